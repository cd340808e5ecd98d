"""
Service wiring and per-request dependencies (caller identity, admin override, query params).
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Depends, Request

from ..core import config
from ..core.auth import UserService
from ..core.jsonstore import JsonTreeStore
from ..core.query import QUERY_PARAMS
from ..core.rules import build_rules
from ..core.store import CollectionStore


@dataclass
class Services:
    """Everything a handler needs, built once per app instance."""
    data: CollectionStore
    protected: CollectionStore
    jsonstore: JsonTreeStore
    users: UserService
    rules: Dict[str, Any]


def build_services(seed_data: Optional[Dict[str, Any]] = None, rules: Optional[Dict[str, Any]] = None) -> Services:
    """
    Construct the stores from a seed mapping.

    Seed shape: {"data": {collection: {id: record}}, "users": {id: user}, "jsonstore": {...}}
    """
    seed_data = seed_data or {}
    protected_seed = {config.PRINCIPAL_COLLECTION: seed_data.get('users', {})}
    if 'sessions' in seed_data:
        protected_seed[config.SESSIONS_COLLECTION] = seed_data['sessions']

    protected = CollectionStore(protected_seed)
    return Services(
        data=CollectionStore(seed_data.get('data', {})),
        protected=protected,
        jsonstore=JsonTreeStore(seed_data.get('jsonstore', {})),
        users=UserService(protected),
        rules=build_rules(rules),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_token(request: Request) -> Optional[str]:
    return request.headers.get(config.AUTH_HEADER) or None


def get_current_user(token: Optional[str] = Depends(get_token),
                     services: Services = Depends(get_services)) -> Optional[Dict[str, Any]]:
    """Caller identity, or None for anonymous requests."""
    return services.users.resolve_user(token)


def get_is_admin(request: Request) -> bool:
    """Admin override: presence of the trusted header, whatever its value."""
    return config.ADMIN_HEADER in request.headers


def get_query_params(request: Request) -> Dict[str, Any]:
    return {name: request.query_params.get(name) for name in QUERY_PARAMS if name in request.query_params}
