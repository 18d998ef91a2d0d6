from theta_connector.observability.logger import (
    get_call_id,
    new_call_id,
    setup_logging,
)

__all__ = ["get_call_id", "new_call_id", "setup_logging"]
