"""
Rule engine - cascading, field-aware access control for collection operations.

Rule set shape:
    {
        "*":        {".create": ["User"], ".update": ["Owner"], ".delete": ["Owner"]},
        "comments": {
            ".read": ["Guest"],
            "*": {"email": {".read": "isOwner(user, data)"}},
            "<record id>": {".update": false, "pinned": {".update": false}},
        },
    }

A rule is a list of roles (Guest, User, Owner), a bool, or an expression string.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from . import expression
from .errors import Forbidden, NotFound, Unauthorized
from .store import CollectionStore
from ..util.logging import logger

WILDCARD = '*'

ACTIONS = {
    'GET': '.read',
    'POST': '.create',
    'PUT': '.update',
    'PATCH': '.update',
    'DELETE': '.delete',
}
WRITE_ACTIONS = ('.create', '.update')

ROLE_GUEST = 'Guest'
ROLE_USER = 'User'
ROLE_OWNER = 'Owner'

DEFAULT_RULES = {
    WILDCARD: {
        '.create': [ROLE_USER],
        '.update': [ROLE_OWNER],
        '.delete': [ROLE_OWNER],
    }
}

Rule = Union[bool, str, List[str]]
PropRule = Tuple[str, Rule]


@dataclass
class ResolvedRule:
    """The top-level rule for an action plus the accumulated field rules."""
    rule: Rule
    prop_rules: List[PropRule] = field(default_factory=list)


def normalize_action(action: str) -> str:
    """Accept 'read', '.read' or an HTTP verb and return the dotted action key."""
    if action.upper() in ACTIONS:
        return ACTIONS[action.upper()]
    return action if action.startswith('.') else f'.{action}'


def build_rules(settings: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Merge configured rules over the built-in defaults, per collection name."""
    rules = copy.deepcopy(DEFAULT_RULES)
    rules.update(copy.deepcopy(settings or {}))
    return rules


def rule_or_default(current: Any, rule: Any) -> Any:
    """An absent or empty rule keeps the current one."""
    if rule is None:
        return current
    if isinstance(rule, (list, str, dict)) and len(rule) == 0:
        return current
    return rule


def get_prop_rules(block: Dict[str, Any], action: str) -> List[PropRule]:
    """Field rules for an action from a block; dotted keys are actions, not fields."""
    return [
        (prop, content[action])
        for prop, content in block.items()
        if not prop.startswith('.') and isinstance(content, dict) and content.get(action) is not None
    ]


def resolve_rule(rules: Dict[str, Any], action: str, collection: str,
                 record: Optional[Dict[str, Any]] = None) -> ResolvedRule:
    """
    Resolve the effective rules for one action on one record.

    Precedence, lowest first:
        1. wildcard collection default for the action (allowed if absent)
        2. the collection's own rule for the action
        3. field rules from the collection's wildcard block
        4. the record's override block: its action rule replaces the current one,
           its field rules are merged over the collection ones by field name
    """
    action = normalize_action(action)
    record = record or {}

    current = rule_or_default(True, rules.get(WILDCARD, {}).get(action))
    prop_rules: Dict[str, Rule] = {}

    collection_rules = rules.get(collection) if collection != WILDCARD else None
    if collection_rules is not None:
        current = rule_or_default(current, collection_rules.get(action))

        all_prop_rules = collection_rules.get(WILDCARD)
        if isinstance(all_prop_rules, dict):
            prop_rules.update(get_prop_rules(all_prop_rules, action))

        record_id = record.get('_id')
        record_rules = collection_rules.get(record_id) if isinstance(record_id, str) else None
        if isinstance(record_rules, dict):
            current = rule_or_default(current, record_rules.get(action))
            prop_rules.update(get_prop_rules(record_rules, action))

    return ResolvedRule(rule=current, prop_rules=list(prop_rules.items()))


def check_roles(roles: List[str], user: Optional[Dict[str, Any]], record: Dict[str, Any], is_admin: bool) -> bool:
    """
    Evaluate a role list.

    Raises:
        Unauthorized: If the rule needs a signed-in caller and there is none.
    """
    if ROLE_GUEST in roles:
        return True
    if user is None and not is_admin:
        raise Unauthorized()
    if ROLE_USER in roles:
        return True
    if user is not None and ROLE_OWNER in roles:
        return user.get('_id') is not None and user.get('_id') == record.get('_ownerId')
    return False


class AccessContext:
    """Per-request access mediator; gates operations and redacts fields in place."""

    def __init__(self, store: CollectionStore, rules: Dict[str, Any], action: str, collection: str,
                 user: Optional[Dict[str, Any]] = None, is_admin: bool = False):
        self.store = store
        self.rules = rules
        self.action = normalize_action(action)
        self.collection = collection
        self.user = user
        self.is_admin = is_admin

    # Helpers exposed to rule expressions
    def get(self, collection: str, record_id: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(collection, str) or not isinstance(record_id, str):
            return None
        try:
            return self.store.get(collection, record_id)
        except NotFound:
            return None

    @staticmethod
    def is_owner(user: Optional[Dict[str, Any]], record: Optional[Dict[str, Any]]) -> bool:
        if not isinstance(user, dict) or not isinstance(record, dict):
            return False
        return user.get('_id') is not None and user.get('_id') == record.get('_ownerId')

    def scope(self, data: Any, new_data: Any) -> Dict[str, Any]:
        helpers = {'get': self.get, 'isOwner': self.is_owner}
        return {
            'user': self.user,
            'data': data,
            'newData': new_data,
            'action': self.action,
            'context': {'user': self.user, 'rules': helpers},
            **helpers,
        }

    def evaluate(self, rule: Rule, data: Any, new_data: Any) -> bool:
        """Verdict for a single rule against a record and payload."""
        if isinstance(rule, list):
            return check_roles(rule, self.user, data if isinstance(data, dict) else {}, self.is_admin)
        if isinstance(rule, str):
            return expression.evaluate(rule, self.scope(data, new_data))
        return bool(rule)

    def _apply_prop_rules(self, prop_rules: List[PropRule], data: Any, new_data: Any) -> List[str]:
        redacted = []
        for prop, rule in prop_rules:
            try:
                allowed = self.evaluate(rule, data, new_data)
            except Unauthorized:
                # Field role rules hide the field from anonymous callers instead of failing
                allowed = False
            if allowed:
                continue
            if self.action in WRITE_ACTIONS:
                target = new_data
            elif self.action == '.read':
                target = data
            else:
                target = None
            if isinstance(target, dict) and prop in target:
                del target[prop]
                redacted.append(prop)
        return redacted

    def can_access(self, data: Any = None, new_data: Optional[Dict[str, Any]] = None) -> None:
        """
        Authorize the operation and strip fields the caller may not see or write.

        Args:
            data: The stored record, a list of records (read listings), or a scalar result
            new_data: Incoming payload for create/update

        Raises:
            Unauthorized: If a role rule needs a signed-in caller
            Forbidden: If the verdict is false and the admin override is not set
        """
        record = data if isinstance(data, dict) else {}
        resolved = resolve_rule(self.rules, self.action, self.collection, record)

        granted = self.evaluate(resolved.rule, record, new_data)
        if not granted and not self.is_admin:
            raise Forbidden()

        redacted = []
        if isinstance(data, list):
            for entry in data:
                if isinstance(entry, dict):
                    entry_rules = resolve_rule(self.rules, self.action, self.collection, entry)
                    redacted.extend(self._apply_prop_rules(entry_rules.prop_rules, entry, new_data))
        else:
            redacted = self._apply_prop_rules(resolved.prop_rules, data, new_data)

        logger.log_access_decision(self.action, self.collection, True, redacted, admin=self.is_admin)
