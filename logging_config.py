import logging
import os
import sys
from pprint import pformat

from dotenv import load_dotenv

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG").upper()

# Configure logging
def setup_logging():
    # Create logger
    logger = logging.getLogger("stokstak_api")
    logger.setLevel(LOG_LEVEL)

    # Avoid stacking handlers when the module is reloaded
    if not logger.handlers:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(LOG_LEVEL)

        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(formatter)

        logger.addHandler(console_handler)

    return logger

# Get the logger
logger = setup_logging()

def log_request_info(request, message="Request received"):
    """Log detailed request information"""
    logger.info(f"{message}: {request.method} {request.url}")
    headers = dict(request.headers)
    if "authorization" in headers:
        headers["authorization"] = "Bearer ********"
    logger.debug(f"Request headers: {pformat(headers)}")

def log_response_info(response, message="Response sent"):
    """Log detailed response information"""
    logger.info(f"{message}: Status {response.status_code}")
    logger.debug(f"Response headers: {pformat(dict(response.headers))}")
