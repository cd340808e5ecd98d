"""
Data service: rule-gated CRUD and queries over arbitrary collections.
"""

from fastapi import APIRouter, Body, Depends
from typing import Any, Dict, Optional

from .deps import Services, get_current_user, get_is_admin, get_query_params, get_services
from .schemas import DeleteReceipt
from ..core.errors import BadRequest
from ..core.query import run_query
from ..core.rules import AccessContext
from ..core.store import assign_clean

router = APIRouter()


def _access(services: Services, action: str, collection: str,
            user: Optional[Dict[str, Any]], is_admin: bool) -> AccessContext:
    return AccessContext(services.data, services.rules, action, collection, user, is_admin)


def _require_object(body: Any) -> Dict[str, Any]:
    if not isinstance(body, dict):
        raise BadRequest("Request body must be a JSON object")
    return body


@router.get("")
def list_collections(services: Services = Depends(get_services)):
    """Names of all collections."""
    return run_query(services.data)


def _read(services: Services, collection: str, record_id: Optional[str], params: Dict[str, Any],
          user: Optional[Dict[str, Any]], is_admin: bool):
    access = _access(services, '.read', collection, user, is_admin)
    return run_query(services.data, collection, record_id, params, services.protected,
                     authorize=access.can_access)


@router.get("/{collection}")
def read_collection(collection: str,
                    params: Dict[str, Any] = Depends(get_query_params),
                    user: Optional[Dict[str, Any]] = Depends(get_current_user),
                    is_admin: bool = Depends(get_is_admin),
                    services: Services = Depends(get_services)):
    """Query a collection; rules run on the fetched records before projection."""
    return _read(services, collection, None, params, user, is_admin)


@router.get("/{collection}/{record_id}")
def read_record(collection: str, record_id: str,
                params: Dict[str, Any] = Depends(get_query_params),
                user: Optional[Dict[str, Any]] = Depends(get_current_user),
                is_admin: bool = Depends(get_is_admin),
                services: Services = Depends(get_services)):
    return _read(services, collection, record_id, params, user, is_admin)


@router.post("/{collection}")
def create_record(collection: str, body: Any = Body(None),
                  user: Optional[Dict[str, Any]] = Depends(get_current_user),
                  is_admin: bool = Depends(get_is_admin),
                  services: Services = Depends(get_services)):
    """Create a record owned by the caller."""
    payload = assign_clean({}, _require_object(body))
    _access(services, '.create', collection, user, is_admin).can_access(None, payload)

    if user is not None:
        payload['_ownerId'] = user['_id']
    return services.data.add(collection, payload)


@router.put("/{collection}/{record_id}")
def replace_record(collection: str, record_id: str, body: Any = Body(None),
                   user: Optional[Dict[str, Any]] = Depends(get_current_user),
                   is_admin: bool = Depends(get_is_admin),
                   services: Services = Depends(get_services)):
    """Replace a record; ownership and creation time carry over."""
    payload = _require_object(body)
    existing = services.data.get(collection, record_id)
    _access(services, '.update', collection, user, is_admin).can_access(existing, payload)
    return services.data.set(collection, record_id, payload)


@router.patch("/{collection}/{record_id}")
def update_record(collection: str, record_id: str, body: Any = Body(None),
                  user: Optional[Dict[str, Any]] = Depends(get_current_user),
                  is_admin: bool = Depends(get_is_admin),
                  services: Services = Depends(get_services)):
    """Merge the payload into a record."""
    payload = _require_object(body)
    existing = services.data.get(collection, record_id)
    _access(services, '.update', collection, user, is_admin).can_access(existing, payload)
    return services.data.merge(collection, record_id, payload)


@router.delete("/{collection}/{record_id}", response_model=DeleteReceipt)
def delete_record(collection: str, record_id: str,
                  user: Optional[Dict[str, Any]] = Depends(get_current_user),
                  is_admin: bool = Depends(get_is_admin),
                  services: Services = Depends(get_services)):
    existing = services.data.get(collection, record_id)
    _access(services, '.delete', collection, user, is_admin).can_access(existing)
    return services.data.delete(collection, record_id)
