"""
Data engine: collection store, query pipeline and rule engine.
"""

from .errors import BadRequest, Conflict, Forbidden, NotFound, RuleSyntaxError, ServiceError, Unauthorized
from .store import CollectionStore
from .query import run_query, parse_where
from .rules import AccessContext, ResolvedRule, build_rules, resolve_rule

__all__ = [
    'CollectionStore',
    'run_query',
    'parse_where',
    'AccessContext',
    'ResolvedRule',
    'build_rules',
    'resolve_rule',
    'ServiceError',
    'BadRequest',
    'Unauthorized',
    'Forbidden',
    'NotFound',
    'Conflict',
    'RuleSyntaxError',
]
