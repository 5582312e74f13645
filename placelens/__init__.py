# PlaceLens: what is this point on the map like?
#
# Lazy imports keep `import placelens` cheap; the service pulls in httpx,
# openai and every adapter.

__all__ = ["PlaceIntelService", "generate_report", "build_fallback_report"]


def __getattr__(name: str):
    if name == "PlaceIntelService":
        from placelens.service import PlaceIntelService
        return PlaceIntelService
    if name == "generate_report":
        from placelens.reporting import generate_report
        return generate_report
    if name == "build_fallback_report":
        from placelens.fallback import build_fallback_report
        return build_fallback_report
    raise AttributeError(f"module 'placelens' has no attribute {name!r}")
