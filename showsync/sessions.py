import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from showsync import __version__

USER_AGENT = f"showsync-bot/{__version__}"


def make_session(retries: int = 3, backoff: float = 0.5) -> requests.Session:
    """A requests session that retries idempotent requests on connection errors and 429/5xx."""
    retry = Retry(
        total=retries,
        backoff_factor=backoff,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=("GET", "HEAD"),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session = requests.Session()
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update({"User-Agent": USER_AGENT})
    return session
