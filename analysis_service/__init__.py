from analysis_service.analysis_service import (
    HISTORY_PARAMETERS,
    AnalysisSession,
    ClimateAnalysisService,
    LocationResolver,
    WeatherProvider,
    main,
    summarise,
)
