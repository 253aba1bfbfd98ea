import requests

from env import OPENFOODFACTS_USER_AGENT, SOURCE_TIMEOUT
from logger_manager import log_debug, log_error
from services.errors import SourceUnavailable


def create_http_session(user_agent: str = OPENFOODFACTS_USER_AGENT) -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": user_agent, "Accept": "application/json"})
    return session


def fetch_json(session: requests.Session, url: str, params: dict = None, timeout: float = SOURCE_TIMEOUT,
               allow_not_found: bool = False):
    """
    GET `url` and decode the JSON body.
    Transport errors, non-2xx statuses and undecodable bodies raise SourceUnavailable.
    With `allow_not_found` an HTTP 404 returns None instead.
    """
    log_debug(f"GET {url} params={params}")
    try:
        response = session.get(url, params=params, timeout=timeout)
    except requests.RequestException as e:
        log_error(f"Request to {url} failed: {e}", e)
        raise SourceUnavailable(f"Request to {url} failed: {e}") from e

    if allow_not_found and response.status_code == 404:
        log_debug(f"Request to {url} returned HTTP 404")
        return None
    if not 200 <= response.status_code < 300:
        log_error(f"Request to {url} returned HTTP {response.status_code}")
        raise SourceUnavailable(f"Request to {url} returned HTTP {response.status_code}")

    try:
        return response.json()
    except ValueError as e:
        log_error(f"Response from {url} is not valid JSON: {e}", e)
        raise SourceUnavailable(f"Response from {url} is not valid JSON") from e


def extract_product_info(product_data: dict):
    """
    Extracts (found, product) from an Open Food Facts product response.
    """
    found = product_data.get("status") == 1
    product = product_data.get("product")
    if not found or not isinstance(product, dict):
        return False, None
    return True, product
