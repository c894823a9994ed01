from src.usage_engine.classifier import Severity, classify
from src.usage_engine.credentials import CredentialStore, load_credentials
from src.usage_engine.engine import EngineConfig, TrackingEngine
from src.usage_engine.errors import (
    AuthError,
    CredentialError,
    FetchError,
    InvalidCredentials,
    NetworkError,
    NoCredentials,
    ParseError,
    UsageEngineError,
)
from src.usage_engine.fetcher import RateLimitFetcher
from src.usage_engine.models import ContextUsage, Credentials, PlanTier, Snapshot, UsageWindow
from src.usage_engine.monitor import CredentialsMonitor
from src.usage_engine.poller import UsagePoller
from src.usage_engine.transcript import ContextScanner, scan

__all__ = [
    "AuthError",
    "ContextScanner",
    "ContextUsage",
    "CredentialError",
    "CredentialStore",
    "Credentials",
    "CredentialsMonitor",
    "EngineConfig",
    "FetchError",
    "InvalidCredentials",
    "NetworkError",
    "NoCredentials",
    "ParseError",
    "PlanTier",
    "RateLimitFetcher",
    "Severity",
    "Snapshot",
    "TrackingEngine",
    "UsageEngineError",
    "UsagePoller",
    "UsageWindow",
    "classify",
    "load_credentials",
    "scan",
]
