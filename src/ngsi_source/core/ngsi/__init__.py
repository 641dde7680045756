from ngsi_source.core.ngsi.connection import NgsiLdConnection, format_expiry
from ngsi_source.core.ngsi.proxy import NgsiProxy, iter_sse_events

__all__ = ["NgsiLdConnection", "NgsiProxy", "format_expiry", "iter_sse_events"]
