"""
Query pipeline - filter, sort, paginate, distinct, count, select and load over store output.

Stages run in a fixed order; each one is driven by a request parameter:
where -> sortBy -> offset -> pageSize -> distinct -> count -> select -> load
"""

import json
import re
from dataclasses import dataclass
from functools import cmp_to_key
from typing import Any, Callable, Dict, List, Optional, Tuple

from .config import PRINCIPAL_COLLECTION
from .errors import BadRequest
from .store import CollectionStore
from ..util.logging import logger

QUERY_PARAMS = ('where', 'sortBy', 'offset', 'pageSize', 'distinct', 'count', 'select', 'load')
DEFAULT_PAGE_SIZE = 10

# Never attached to a joined record
SENSITIVE_JOIN_FIELDS = ('hashedPassword',)

WHERE_SYNTAX_ERROR = "Could not parse WHERE clause, check your syntax."


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _loose_equal(a: Any, b: Any) -> bool:
    if a == b:
        return True
    for number, text in ((a, b), (b, a)):
        if _is_number(number) and isinstance(text, str):
            try:
                return float(text) == number
            except ValueError:
                return False
    return False


def _ordered(op: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def compare(actual, expected):
        try:
            return actual is not None and op(actual, expected)
        except TypeError:
            return False
    return compare


def _like(actual: Any, expected: Any) -> bool:
    if not isinstance(actual, str) or not isinstance(expected, str):
        return False
    return expected.casefold() in actual.casefold()


def _within(actual: Any, expected: List[Any]) -> bool:
    return any(_loose_equal(actual, candidate) for candidate in expected)


# Order matters: longer operators must be tried before their prefixes
OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    '<=': _ordered(lambda a, b: a <= b),
    '<': _ordered(lambda a, b: a < b),
    '>=': _ordered(lambda a, b: a >= b),
    '>': _ordered(lambda a, b: a > b),
    '=': _loose_equal,
    ' like ': _like,
    ' in ': _within,
}

_CLAUSE_PATTERN = re.compile(
    r'^(.+?)(' + '|'.join(re.escape(op) for op in OPERATORS) + r')(.+?)$',
    re.IGNORECASE | re.DOTALL,
)
_CONNECTIVE_PATTERN = re.compile(r'("(?:[^"\\]|\\.)*")|( and | or )', re.IGNORECASE)


@dataclass
class LoadSpec:
    """One relational join: attach foreign_collection[record[local_field]] as target_prop."""
    target_prop: str
    local_field: str
    foreign_collection: str


def _split_clauses(expression: str) -> Tuple[List[str], Optional[str]]:
    """Split on connectives that sit outside double-quoted literals."""
    clauses = []
    connectives = set()
    start = 0
    for match in _CONNECTIVE_PATTERN.finditer(expression):
        if match.group(2) is None:
            continue
        connectives.add(match.group(2).strip().lower())
        clauses.append(expression[start:match.start()])
        start = match.end()
    clauses.append(expression[start:])

    if len(connectives) > 1:
        raise BadRequest("Mixing 'and' with 'or' in a WHERE clause is not supported")
    return clauses, connectives.pop() if connectives else None


def _parse_value(operator: str, raw: str) -> Any:
    if operator == ' in ':
        inner = raw
        if inner.startswith('(') and inner.endswith(')'):
            inner = inner[1:-1]
        return json.loads(f'[{inner}]')
    return json.loads(raw)


def _create_checker(clause: str) -> Callable[[Dict[str, Any]], bool]:
    match = _CLAUSE_PATTERN.match(clause.strip())
    if not match:
        raise ValueError(f"Unrecognized clause: {clause}")

    prop, operator, raw = match.group(1).strip(), match.group(2).lower(), match.group(3).strip()
    if not prop or any(c in prop for c in '<>="'):
        raise ValueError(f"Invalid field name in clause: {clause}")
    expected = _parse_value(operator, raw)
    compare = OPERATORS[operator]

    return lambda record: compare(record.get(prop), expected)


def parse_where(expression: str) -> Callable[[Dict[str, Any]], bool]:
    """
    Compile a WHERE expression into a record predicate.

    Clauses are joined either all by ' and ' or all by ' or '. Values are JSON literals,
    e.g. `price>=100 and price<=500`, `name like "an"`, `status in ("open","hold")`.

    Raises:
        BadRequest: If the expression is malformed or mixes connectives.
    """
    clauses, connective = _split_clauses(expression.strip())
    try:
        checkers = [_create_checker(clause) for clause in clauses]
    except (ValueError, IndexError) as e:
        raise BadRequest(WHERE_SYNTAX_ERROR) from e

    if connective == 'or':
        return lambda record: any(check(record) for check in checkers)
    return lambda record: all(check(record) for check in checkers)


def parse_sort(spec: str) -> List[Tuple[str, bool]]:
    """Parse 'field [desc], ...' into (field, descending) pairs in priority order."""
    clauses = []
    for part in spec.split(','):
        tokens = part.split()
        if not tokens:
            continue
        if len(tokens) > 2 or (len(tokens) == 2 and tokens[1].lower() not in ('desc', 'asc')):
            raise BadRequest(f"Invalid sort clause: {part.strip()}")
        clauses.append((tokens[0], len(tokens) == 2 and tokens[1].lower() == 'desc'))
    return clauses


def _as_text(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, str):
        return value
    return json.dumps(value)


def compare_values(a: Any, b: Any) -> int:
    """Numeric difference for two numbers, locale-style string ordering otherwise."""
    if _is_number(a) and _is_number(b):
        return (a > b) - (a < b)

    a_text, b_text = _as_text(a), _as_text(b)
    a_key, b_key = a_text.casefold(), b_text.casefold()
    if a_key != b_key:
        return (a_key > b_key) - (a_key < b_key)
    # Lowercase sorts before uppercase
    a_key, b_key = a_text.swapcase(), b_text.swapcase()
    return (a_key > b_key) - (a_key < b_key)


def sort_records(records: List[Dict[str, Any]], spec: str) -> List[Dict[str, Any]]:
    """Stable multi-pass sort; the first listed field has the highest priority."""
    result = list(records)
    for prop, desc in reversed(parse_sort(spec)):
        sign = -1 if desc else 1
        result.sort(key=cmp_to_key(
            lambda x, y, prop=prop, sign=sign: compare_values(x.get(prop), y.get(prop)) * sign
        ))
    return result


def _split_props(spec: str) -> List[str]:
    return [p.strip() for p in spec.split(',') if p.strip()]


def _parse_int(name: str, value: Any, default: int) -> int:
    if value is None or str(value).strip() == '':
        return default
    try:
        number = int(str(value).strip())
    except ValueError:
        raise BadRequest(f"Parameter {name} must be an integer, got {value!r}")
    if number < 0:
        raise BadRequest(f"Parameter {name} must not be negative")
    return number


def distinct_records(records: List[Dict[str, Any]], props: List[str]) -> List[Dict[str, Any]]:
    """Keep the first record for each unique combination of props."""
    seen = set()
    result = []
    for record in records:
        key = tuple(json.dumps(record.get(p), sort_keys=True) for p in props)
        if key not in seen:
            seen.add(key)
            result.append(record)
    return result


def select_fields(record: Dict[str, Any], props: List[str]) -> Dict[str, Any]:
    return {p: record[p] for p in props if p in record}


def parse_load(spec: str) -> List[LoadSpec]:
    """Parse 'targetProp=localField:foreignCollection, ...'."""
    specs = []
    for part in _split_props(spec):
        try:
            target_prop, relation = part.split('=', 1)
            local_field, foreign_collection = relation.split(':', 1)
        except ValueError:
            raise BadRequest(f"Invalid load clause: {part}")
        if not (target_prop.strip() and local_field.strip() and foreign_collection.strip()):
            raise BadRequest(f"Invalid load clause: {part}")
        specs.append(LoadSpec(target_prop.strip(), local_field.strip(), foreign_collection.strip()))
    return specs


def load_related(record: Dict[str, Any], spec: LoadSpec, store: CollectionStore,
                 protected_store: Optional[CollectionStore] = None) -> Dict[str, Any]:
    """Attach the joined foreign record (or None) to record under spec.target_prop."""
    source = store
    if spec.foreign_collection == PRINCIPAL_COLLECTION and protected_store is not None:
        source = protected_store

    seek_id = record.get(spec.local_field)
    related = None
    if isinstance(seek_id, str) and source.has(spec.foreign_collection, seek_id):
        related = source.get(spec.foreign_collection, seek_id)
        for field in SENSITIVE_JOIN_FIELDS:
            related.pop(field, None)

    record[spec.target_prop] = related
    return record


def _flag(value: Any) -> bool:
    if value is None or isinstance(value, bool):
        return bool(value)
    return str(value).strip().lower() not in ('false', '0')


def _text(params: Dict[str, Any], name: str) -> Optional[str]:
    value = params.get(name)
    if value is None or str(value).strip() == '':
        return None
    return str(value)


def run_query(store: CollectionStore, collection: Optional[str] = None, record_id: Optional[str] = None,
              params: Optional[Dict[str, Any]] = None,
              protected_store: Optional[CollectionStore] = None,
              authorize: Optional[Callable[[Any], None]] = None) -> Any:
    """
    Run the full pipeline for one read request.

    Args:
        store: Store the collection lives in
        collection: Target collection; None lists collection names
        record_id: Single-record token, ignored when a where filter is given
        params: Query parameters (where, sortBy, offset, pageSize, distinct, count, select, load)
        protected_store: Store used for joins against the principal collection
        authorize: Called with the fetched data before any other stage, so access rules
            see whole records; it may raise or redact in place

    Returns:
        A list of records, a single record, an integer count, or collection names

    Raises:
        NotFound: If the base fetch misses
        BadRequest: If any parameter is malformed
    """
    params = params or {}
    where = _text(params, 'where')

    if where is not None:
        if collection is None:
            raise BadRequest("A collection is required for WHERE queries")
        predicate = parse_where(where)
        data = [record for record in store.get(collection) if predicate(record)]
    elif collection is not None:
        data = store.get(collection, record_id)
    else:
        return store.list_collections()

    if authorize is not None:
        authorize(data)

    is_list = isinstance(data, list)

    sort_by = _text(params, 'sortBy')
    if sort_by is not None and is_list:
        data = sort_records(data, sort_by)

    offset = _parse_int('offset', params.get('offset'), 0)
    if offset and is_list:
        data = data[offset:]

    if params.get('pageSize') is not None:
        page_size = _parse_int('pageSize', params.get('pageSize'), DEFAULT_PAGE_SIZE) or DEFAULT_PAGE_SIZE
        if is_list:
            data = data[:page_size]

    distinct = _text(params, 'distinct')
    if distinct is not None and is_list:
        data = distinct_records(data, _split_props(distinct))

    if _flag(params.get('count')):
        count = len(data) if is_list else 1
        logger.log_query(collection, params, count)
        return count

    select = _text(params, 'select')
    if select is not None:
        props = _split_props(select)
        data = [select_fields(r, props) for r in data] if is_list else select_fields(data, props)

    load = _text(params, 'load')
    if load is not None:
        for spec in parse_load(load):
            logger.debug(f"Loading related records from {spec.foreign_collection} into "
                         f"{spec.target_prop}, joined on _id={spec.local_field}")
            if is_list:
                data = [load_related(r, spec, store, protected_store) for r in data]
            else:
                data = load_related(data, spec, store, protected_store)

    logger.log_query(collection, params, len(data) if is_list else 1)
    return data
