# =============================================================================
# vibrate_core/services/__init__.py
# Service Layer for the Vibration Data Core
# Separates business logic from UI presentation
# =============================================================================
"""
Service Layer

Pages call these services with plain function calls and render the returned
ServiceResult; no page talks to the store or the transport directly.

Usage Example:
-------------
    from vibrate_core.context import session_context
    from vibrate_core.services import MeasurementService

    service = MeasurementService(session_context())

    result = service.save_measurement(form_values)
    if not result:
        for field, message in (result.field_errors or {}).items():
            st.warning(f"{field}: {message}")

    sync = service.sync()
    if sync:
        st.success(sync.metadata["message"])
"""

from .base_service import BaseService, ServiceResult
from .measurement_service import MeasurementService

__all__ = [
    "BaseService",
    "ServiceResult",
    "MeasurementService",
]
