"""Discovery, verification and ranking of installed Java runtimes."""

from .host import HostPlatform, detect_host
from .inspector import RuntimeInspector
from .manager import DefaultJavaRuntimes, JavaManager, ManagerState, VerificationCache
from .runtime import Architecture, Compatibility, JavaRuntime, Vendor
from .selector import CompatibilityScore, JavaRequirement, RecommendationLevel, select_java_for_game
from .settings import DiscoverySettings, TrustLevel, load_settings
from .verifier import JavaVerifier, VerifyResult

__all__ = [
    "Architecture",
    "Compatibility",
    "CompatibilityScore",
    "DefaultJavaRuntimes",
    "DiscoverySettings",
    "HostPlatform",
    "JavaManager",
    "JavaRequirement",
    "JavaRuntime",
    "JavaVerifier",
    "ManagerState",
    "RecommendationLevel",
    "RuntimeInspector",
    "TrustLevel",
    "Vendor",
    "VerificationCache",
    "VerifyResult",
    "detect_host",
    "load_settings",
    "select_java_for_game",
]
