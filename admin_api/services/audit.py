# admin_api/services/audit.py
import logging
from datetime import datetime, timezone

# dedicated logger so deployments can route audit lines to their own sink
audit_logger = logging.getLogger("admin_api.audit")


def audit_log(action: str, resource: str, id: str, actor: str) -> None:
    timestamp = datetime.now(timezone.utc).isoformat()
    audit_logger.info("%s actor=%s action=%s resource=%s id=%s", timestamp, actor, action, resource, id)
