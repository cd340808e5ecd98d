"""
JSON store service: schemaless nested documents addressed by URL path.
"""

from fastapi import APIRouter, Body, Depends
from typing import Any, List

from .deps import Services, get_services

router = APIRouter()


def _tokens(path: str) -> List[str]:
    return [token for token in path.split('/') if token]


@router.get("")
@router.get("/{path:path}")
def get_document(path: str = "", services: Services = Depends(get_services)):
    return services.jsonstore.get(_tokens(path))


@router.post("")
@router.post("/{path:path}")
def post_document(path: str = "", body: Any = Body(None), services: Services = Depends(get_services)):
    return services.jsonstore.post(_tokens(path), body)


@router.put("/{path:path}")
def put_document(path: str, body: Any = Body(None), services: Services = Depends(get_services)):
    return services.jsonstore.put(_tokens(path), body)


@router.patch("/{path:path}")
def patch_document(path: str, body: Any = Body(None), services: Services = Depends(get_services)):
    return services.jsonstore.patch(_tokens(path), body)


@router.delete("/{path:path}")
def delete_document(path: str, services: Services = Depends(get_services)):
    return services.jsonstore.delete(_tokens(path))
