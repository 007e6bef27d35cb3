from __future__ import annotations

import logging

import requests

from .common import (
    AuthMode, CredentialsError, FetchResult,
    RatingChange, UpstreamSubmission, UserProfile,
)
from .rate_limiter import RateLimiter, get_shared_limiter
from .signing import build_signed_params

logger = logging.getLogger(__name__)


class CodeforcesClient:
    """Read-only client for the three Codeforces methods the sync needs.

    Every public fetch returns a :class:`FetchResult` and never raises:
    network errors, timeouts, non-2xx answers, API-level failures and
    missing result bodies all come back as ``FetchResult.failure``.
    """

    BASE_URL = 'https://codeforces.com/api'
    DEFAULT_TIMEOUT = 10
    OPERATIONS = ('fetch_profile', 'fetch_rating_history', 'fetch_submissions')

    def __init__(
        self,
        api_key: str = None,
        api_secret: str = None,
        base_url: str = None,
        timeout: float = DEFAULT_TIMEOUT,
        rate_limiter: RateLimiter = None,
        session: requests.Session = None,
    ):
        self.api_key = api_key
        self.api_secret = api_secret
        self.base_url = (base_url or self.BASE_URL).rstrip('/')
        self.timeout = timeout
        self.rate_limiter = rate_limiter or RateLimiter(0)
        self.session = session or self._create_session()

    @classmethod
    def from_config(cls, config) -> CodeforcesClient:
        base_url = config.get('CODEFORCES_API_BASE_URL') or cls.BASE_URL
        return cls(
            api_key=config.get('CODEFORCES_API_KEY'),
            api_secret=config.get('CODEFORCES_API_SECRET'),
            base_url=base_url,
            timeout=config.get('CODEFORCES_TIMEOUT', cls.DEFAULT_TIMEOUT),
            rate_limiter=get_shared_limiter(
                base_url, config.get('CODEFORCES_RATE_LIMIT', 0.5)
            ),
        )

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key and self.api_secret)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def fetch_profile(self, handle: str, auth: AuthMode = AuthMode.SIGNED) -> FetchResult:
        """``user.info`` for one handle. An empty result list is a failure."""
        result = self._call('user.info', {'handles': handle}, auth)
        if not result.ok:
            return result
        if not isinstance(result.data, list) or not result.data:
            return FetchResult.failure('user.info returned no data', auth)
        try:
            profile = UserProfile.from_api(result.data[0])
        except (KeyError, TypeError, ValueError) as e:
            return FetchResult.failure(f'user.info returned malformed data: {e}', auth)
        return FetchResult.success(profile, auth)

    def fetch_rating_history(self, handle: str, auth: AuthMode = AuthMode.SIGNED) -> FetchResult:
        """``user.rating``. An empty list is valid: the user never competed."""
        result = self._call('user.rating', {'handle': handle}, auth)
        if not result.ok:
            return result
        return self._parse_list('user.rating', result.data, RatingChange.from_api, auth)

    def fetch_submissions(self, handle: str, auth: AuthMode = AuthMode.SIGNED) -> FetchResult:
        """``user.status``, newest first as the API returns it."""
        result = self._call('user.status', {'handle': handle}, auth)
        if not result.ok:
            return result
        return self._parse_list('user.status', result.data, UpstreamSubmission.from_api, auth)

    def fetch_with_fallback(self, operation: str, handle: str) -> FetchResult:
        """Run ``operation`` signed, then unsigned if the signed call failed."""
        if operation not in self.OPERATIONS:
            raise ValueError(f'Unknown operation: {operation}')
        fetch = getattr(self, operation)

        signed = fetch(handle, auth=AuthMode.SIGNED)
        if signed.ok:
            return signed
        logger.info(
            f"Signed {operation} failed for {handle} ({signed.error}), "
            f"retrying without auth"
        )
        unsigned = fetch(handle, auth=AuthMode.UNSIGNED)
        if unsigned.ok:
            return unsigned
        return FetchResult.failure(
            f'signed: {signed.error}; unsigned: {unsigned.error}',
            AuthMode.UNSIGNED,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update({'User-Agent': 'cf-tracker/0.3'})
        return session

    def _build_params(self, method: str, params: dict, auth: AuthMode) -> dict:
        if auth == AuthMode.SIGNED:
            return build_signed_params(method, params, self.api_key, self.api_secret)
        return {k: v for k, v in params.items() if v is not None}

    def _call(self, method: str, params: dict, auth: AuthMode) -> FetchResult:
        if not params.get('handle') and not params.get('handles'):
            return FetchResult.failure('handle is required', auth)

        try:
            query = self._build_params(method, params, auth)
        except CredentialsError as e:
            return FetchResult.failure(str(e), auth)

        url = f'{self.base_url}/{method}'
        self.rate_limiter.wait()
        try:
            resp = self.session.get(url, params=query, timeout=self.timeout)
            resp.raise_for_status()
        except requests.Timeout:
            logger.warning(f"{method} ({auth.value}) timed out after {self.timeout}s")
            return FetchResult.failure(f'{method} timed out after {self.timeout}s', auth)
        except requests.HTTPError as e:
            comment = self._api_comment(e.response)
            logger.warning(f"{method} ({auth.value}) HTTP error: {e} {comment or ''}")
            return FetchResult.failure(
                f'{method} failed: {comment or e}', auth
            )
        except requests.RequestException as e:
            logger.warning(f"{method} ({auth.value}) request failed: {e}")
            return FetchResult.failure(f'{method} request failed: {e}', auth)

        try:
            payload = resp.json()
        except ValueError:
            return FetchResult.failure(f'{method} returned invalid JSON', auth)

        if not isinstance(payload, dict):
            return FetchResult.failure(f'{method} returned an unexpected body', auth)
        if payload.get('status') != 'OK':
            comment = payload.get('comment') or payload.get('status') or 'unknown error'
            return FetchResult.failure(f'{method} failed: {comment}', auth)
        if payload.get('result') is None:
            return FetchResult.failure(f'{method} returned no data', auth)
        return FetchResult.success(payload['result'], auth)

    @staticmethod
    def _api_comment(response) -> str | None:
        if response is None:
            return None
        try:
            body = response.json()
        except ValueError:
            return None
        if isinstance(body, dict):
            return body.get('comment')
        return None

    @staticmethod
    def _parse_list(method, data, parser, auth) -> FetchResult:
        if not isinstance(data, list):
            return FetchResult.failure(f'{method} returned no data', auth)
        try:
            return FetchResult.success([parser(item) for item in data], auth)
        except (KeyError, TypeError, ValueError) as e:
            return FetchResult.failure(f'{method} returned malformed data: {e}', auth)
