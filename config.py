import os
from dotenv import load_dotenv

load_dotenv()

class Config:

    # Application settings
    SECRET_KEY = os.getenv('SECRET_KEY') or 'call-qa-secret-key'

    # Service configuration
    SERVICE_NAME = 'call_qa_analyzer'
    SERVICE_VERSION = '1.0.0'

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FILE = os.getenv('LOG_FILE', 'call_qa.log')

    # Uploads
    MAX_CONTENT_LENGTH = 100 * 1024 * 1024  # 100 MB
    UPLOAD_FOLDER = os.getenv('UPLOAD_FOLDER', 'uploads')
    ALLOWED_AUDIO_EXTENSIONS = {'wav', 'mp3', 'm4a', 'ogg', 'flac'}

    # Analysis defaults, overridable per request
    ANALYSIS_SEED = int(os.getenv('ANALYSIS_SEED', '42'))
    SILENCE_VALIDATION_MODE = os.getenv('SILENCE_VALIDATION_MODE', 'seeded')
    LATENCY_SCORING_MODE = os.getenv('LATENCY_SCORING_MODE', 'simple')
    REPETITION_MODE = os.getenv('REPETITION_MODE', 'exact')
    WEIGHTING_PROFILE = os.getenv('WEIGHTING_PROFILE', 'standard')
    # Segments at or below this impact are dropped; 4.0 is the stricter reference floor,
    # which no silence shorter than ~23.5 s can clear
    SILENCE_IMPACT_FLOOR = float(os.getenv('SILENCE_IMPACT_FLOOR', '3.0'))

    # Accepted values for the mode settings above
    ANALYSIS_MODES = {
        'SILENCE_VALIDATION_MODE': ('seeded', 'fixed'),
        'LATENCY_SCORING_MODE': ('simple', 'contextual'),
        'REPETITION_MODE': ('exact', 'fuzzy'),
        'WEIGHTING_PROFILE': ('standard', 'property_inquiry', 'callback_scheduling', 'auto')
    }

    @classmethod
    def validate_config(cls):
        """Validate analysis modes and the upload folder"""
        invalid = []
        for name, allowed in cls.ANALYSIS_MODES.items():
            value = str(getattr(cls, name)).lower()
            if value not in allowed:
                invalid.append(f"{name}={value}")

        if invalid:
            raise ValueError(f"Unknown analysis modes: {invalid}")

        try:
            os.makedirs(cls.UPLOAD_FOLDER, exist_ok=True)
        except OSError as e:
            raise ValueError(f"Upload folder {cls.UPLOAD_FOLDER} cannot be created: {e}")
        if not os.access(cls.UPLOAD_FOLDER, os.W_OK):
            raise ValueError(f"Upload folder {cls.UPLOAD_FOLDER} is not writable")

        return True

class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    TESTING = False

    # Enable verbose logging in development
    LOG_LEVEL = 'DEBUG'

class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    TESTING = False

class TestingConfig(Config):
    """Testing configuration"""
    DEBUG = True
    TESTING = True

    # Deterministic silence gates in tests
    SILENCE_VALIDATION_MODE = 'fixed'
    UPLOAD_FOLDER = os.getenv('TEST_UPLOAD_FOLDER', os.path.join('uploads', 'test'))
    LOG_FILE = os.getenv('TEST_LOG_FILE', 'call_qa_test.log')

# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}

def get_config(config_name=None):
    """Get configuration object"""
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'default')

    config_class = config.get(config_name, config['default'])

    # Validate configuration
    try:
        config_class.validate_config()
    except ValueError as e:
        print(f"Configuration error: {e}")
        raise

    return config_class
