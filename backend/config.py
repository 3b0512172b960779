import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///foresight.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Predictor slots per session (create requests may override within 1..MAX_CAPACITY)
    DEFAULT_CAPACITY = int(os.environ.get('DEFAULT_CAPACITY', '5'))
    MAX_CAPACITY = int(os.environ.get('MAX_CAPACITY', '12'))
    # Session codes
    SESSION_CODE_LENGTH = int(os.environ.get('SESSION_CODE_LENGTH', '6'))
    SESSION_CODE_ATTEMPTS = int(os.environ.get('SESSION_CODE_ATTEMPTS', '20'))
    # Admit late joiners as spectators once all predictor slots are taken.
    # When disabled, a join into a full session is rejected.
    SPECTATOR_FALLBACK = os.environ.get('SPECTATOR_FALLBACK', 'true').lower() in ('1', 'true', 'yes')
    # Inactivity reaper (seconds)
    REAPER_INTERVAL_SEC = int(os.environ.get('REAPER_INTERVAL_SEC', '60'))
    INACTIVITY_TTL_SEC = int(os.environ.get('INACTIVITY_TTL_SEC', '120'))
