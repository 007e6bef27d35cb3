from .client import CodeforcesClient
from .common import (
    AuthMode,
    CredentialsError,
    FetchResult,
    RatingChange,
    UpstreamSubmission,
    UserProfile,
)
from .signing import build_signed_params

__all__ = [
    'AuthMode',
    'CodeforcesClient',
    'CredentialsError',
    'FetchResult',
    'RatingChange',
    'UpstreamSubmission',
    'UserProfile',
    'build_signed_params',
]
