"""GPU inference host bootstrap (state-driven, resumable).

Core design goals:
- Ordered stages, resumed from a durable progress marker
- Idempotency predicates checked before every stage
- Clean stop at the driver reboot boundary
- Centralized logging
"""

__all__ = []
