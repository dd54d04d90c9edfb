import json
import logging

from flask import has_request_context, request

logger = logging.getLogger("seatclean.audit")


def log_event(action: str, actor=None, entity=None, entity_id=None, metadata=None):
    ip = None
    user_agent = None
    if has_request_context():
        ip = request.headers.get("X-Forwarded-For", request.remote_addr)
        user_agent = (request.headers.get("User-Agent") or "")[:255] or None

    record = {
        "action": action,
        "actor": actor,
        "entity": entity,
        "entity_id": str(entity_id) if entity_id is not None else None,
        "ip": ip,
        "user_agent": user_agent,
        "metadata": metadata or None,
    }
    logger.info(json.dumps(record, default=str))
