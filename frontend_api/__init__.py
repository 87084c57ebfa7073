from frontend_api.frontend_api import app, create_service
