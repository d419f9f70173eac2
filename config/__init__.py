import os
import json
from pathlib import Path
from dotenv import load_dotenv
from .logging_config import setup_app_logging
import logging

# Load environment variables from .env file
load_dotenv()

# Get the config directory path (where this file is located)
CONFIG_DIR = Path(__file__).parent
PROJECT_ROOT = CONFIG_DIR.parent

# Load configuration from config.json
config_path = CONFIG_DIR / 'config.json'
with open(config_path, 'r', encoding='utf-8') as f:
    CONFIG = json.load(f)

CONFIG['project_root'] = str(PROJECT_ROOT)

# --- System Prompt Loading ---

# The chat system prompt is required: every turn is sent with it.
system_prompt_path = CONFIG_DIR / 'system_prompt.txt'
try:
    with open(system_prompt_path, 'r', encoding='utf-8') as f:
        CONFIG['system_prompt'] = f.read().strip()
except FileNotFoundError:
    raise FileNotFoundError(
        f"System prompt file not found: {system_prompt_path}\n"
        f"Please ensure system_prompt.txt exists in the config directory."
    )

# Document analyst prompt used by the PDF recap capability
document_prompt_path = CONFIG_DIR / 'document_analysis_prompt.txt'
try:
    with open(document_prompt_path, 'r', encoding='utf-8') as f:
        CONFIG['document_analysis_prompt'] = f.read().strip()
except FileNotFoundError:
    CONFIG['document_analysis_prompt'] = "You are a professional document analyst."

# Environment variables (secrets only, never logged)
ENV = {
    'LLM_API_KEY': os.getenv('LLM_API_KEY') or os.getenv('NEBIUS_API_KEY') or os.getenv('OPENAI_API_KEY'),
}

def validate_config():
    """Validate that all required environment variables and configuration settings are present.

    Only the LLM section and its models are strictly required. Email and capability settings
    fall back to defaults, and the SMTP transport is only touched when the live backend is selected.
    """
    # Check environment variables
    missing_env_vars = [key for key, value in ENV.items() if value is None]
    if missing_env_vars:
        raise EnvironmentError(
            f"Missing required environment variables: {', '.join(missing_env_vars)}\n"
            f"Please check your .env file."
        )

    required_services = ['llm']
    for service in required_services:
        if service not in CONFIG:
            raise ValueError(f"Missing configuration for service: {service}")

    # Check if all required LLM models are configured
    required_models = ['chat', 'document_analysis', 'image_analysis']
    for model in required_models:
        if model not in CONFIG['llm'].get('models', {}):
            raise ValueError(f"Missing configuration for LLM model: {model}")

# Validate configuration on module import
validate_config()

# --- Helper function to get config value from CONFIG or environment variable ---
def get_config_value(json_keys: list, env_var_name: str, default_value: any = None):
    """
    Retrieves a configuration value.
    Priority:
    1. Environment variable (if env_var_name is provided and variable is set).
    2. Value from CONFIG dictionary (using json_keys).
    3. default_value.
    """
    if env_var_name:
        env_value = os.getenv(env_var_name)
        if env_value is not None:
            # Match the type of default_value when it is a bool or an int
            if isinstance(default_value, bool):
                if env_value.lower() == 'true': return True
                if env_value.lower() == 'false': return False
            elif isinstance(default_value, int):
                try:
                    return int(env_value)
                except ValueError:
                    pass
            return env_value

    current_level = CONFIG
    try:
        for key in json_keys:
            current_level = current_level[key]
        if isinstance(current_level, (str, int, bool, float, list, dict)):
            return current_level
    except (KeyError, TypeError):
        pass

    return default_value

# --- Conversation / capability settings ---
CONFIG['conversation'] = {
    'history_window': get_config_value(['conversation', 'history_window'], 'CONVERSATION_HISTORY_WINDOW', 20),
    'idle_timeout_minutes': get_config_value(
        ['conversation', 'idle_timeout_minutes'], 'CONVERSATION_IDLE_TIMEOUT_MINUTES', 30
    ),
}

CONFIG.setdefault('capabilities', {})
CONFIG['capabilities']['backend'] = get_config_value(['capabilities', 'backend'], 'CAPABILITY_BACKEND', 'mock')

CONFIG.setdefault('email', {})
CONFIG['email'].update({
    'smtp_host': get_config_value(['email', 'smtp_host'], 'SMTP_HOST', 'localhost'),
    'smtp_port': get_config_value(['email', 'smtp_port'], 'SMTP_PORT', 587),
    'smtp_username': get_config_value(['email', 'smtp_username'], 'SMTP_USERNAME', None),
    'smtp_password': os.getenv('SMTP_PASSWORD'),
    'sender_email': get_config_value(['email', 'sender_email'], 'EMAIL_SENDER_ADDRESS', 'noreply@example.com'),
})

# --- Logging Configuration ---
# Environment variables take precedence over config.json.
CONFIG['logging'] = {
    'level': get_config_value(['logging', 'level'], 'LOG_LEVEL', 'INFO'),
    'file_path': get_config_value(['logging', 'file_path'], 'LOG_FILE_PATH', 'logs/policy_assistant.log'),
    'max_bytes': get_config_value(['logging', 'max_bytes'], 'LOG_MAX_BYTES', 5*1024*1024), # 5MB
    'backup_count': get_config_value(['logging', 'backup_count'], 'LOG_BACKUP_COUNT', 3),
    'format': get_config_value(
        ['logging', 'format'],
        'LOG_FORMAT',
        '%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(lineno)d - %(message)s'
    ),
    'date_format': get_config_value(
        ['logging', 'date_format'],
        'LOG_DATE_FORMAT',
        '%Y-%m-%d %H:%M:%S'
    )
}

# --- Setup Application Logging ---
setup_app_logging(config=CONFIG.get('logging'))

config_init_logger = logging.getLogger(__name__)
config_init_logger.info("[config_init] Logging initialized from config/__init__.py using setup_app_logging.\n")
