"""
Query pipeline tests - where grammar, sorting, paging, distinct, count, select and load.
"""

import pytest

from mockbackend.core.errors import BadRequest, Forbidden, NotFound
from mockbackend.core.query import (
    compare_values,
    parse_load,
    parse_sort,
    parse_where,
    run_query,
    sort_records,
)
from mockbackend.core.store import CollectionStore


@pytest.fixture
def store():
    return CollectionStore({
        'products': {
            'p1': {'name': 'Lamp', 'price': 50, 'category': 'home', 'ownerId': 'u1'},
            'p2': {'name': 'Desk', 'price': 150, 'category': 'office', 'ownerId': 'u2'},
            'p3': {'name': 'Chair', 'price': 500, 'category': 'office', 'ownerId': 'u1'},
            'p4': {'name': 'Sofa', 'price': 600, 'category': 'home', 'ownerId': 'missing'},
        },
    })


@pytest.fixture
def protected_store():
    return CollectionStore({
        'users': {
            'u1': {'email': 'peter@abv.bg', 'username': 'Peter', 'hashedPassword': 'abc'},
            'u2': {'email': 'george@abv.bg', 'username': 'George', 'hashedPassword': 'def'},
        }
    })


def _ids(records):
    return [r['_id'] for r in records]


class TestWhere:
    """Filter expression grammar."""

    def test_range_with_and(self, store):
        result = run_query(store, 'products', params={'where': 'price>=100 and price<=500'})
        assert sorted(r['price'] for r in result) == [150, 500]

    def test_or_connective(self, store):
        result = run_query(store, 'products', params={'where': 'price<100 OR price>550'})
        assert _ids(result) == ['p1', 'p4']

    def test_equality_with_string_literal(self, store):
        result = run_query(store, 'products', params={'where': 'category="office"'})
        assert _ids(result) == ['p2', 'p3']

    def test_like_is_case_insensitive_substring(self, store):
        predicate = parse_where('name like "HA"')
        assert predicate({'name': 'Chair'})
        assert not predicate({'name': 'Desk'})
        assert not predicate({'price': 1})

    def test_in_list_with_and_without_parentheses(self):
        assert parse_where('price in (50,600)')({'price': 600})
        assert parse_where('name in "Desk","Sofa"')({'name': 'Sofa'})
        assert not parse_where('price in (50,600)')({'price': 150})

    def test_boolean_and_number_literals(self):
        predicate = parse_where('active=true and stock>0.5')
        assert predicate({'active': True, 'stock': 1})
        assert not predicate({'active': False, 'stock': 1})

    def test_connective_inside_quoted_literal_is_not_split(self):
        predicate = parse_where('title="Salt and Pepper"')
        assert predicate({'title': 'Salt and Pepper'})

    def test_type_mismatch_compares_false(self):
        predicate = parse_where('price>=100')
        assert not predicate({'price': 'cheap'})
        assert not predicate({})

    @pytest.mark.parametrize('expression', [
        'price',
        'price>=',
        'name=Desk',
        'price in (1,',
        '>=5',
    ])
    def test_malformed_clause_raises_bad_request(self, expression):
        with pytest.raises(BadRequest) as exc_info:
            parse_where(expression)
        assert 'WHERE' in exc_info.value.message

    def test_mixed_connectives_rejected(self):
        with pytest.raises(BadRequest):
            parse_where('price>1 and price<5 or price=10')

    def test_where_on_missing_collection_raises_not_found(self, store):
        with pytest.raises(NotFound):
            run_query(store, 'nope', params={'where': 'price>1'})


class TestSort:
    """Multi-field sorting."""

    def test_first_listed_field_has_priority(self):
        records = [{'a': 1, 'b': 2}, {'a': 1, 'b': 1}, {'a': 2, 'b': 1}]
        result = sort_records(records, 'b,a desc')
        assert result == [{'a': 2, 'b': 1}, {'a': 1, 'b': 1}, {'a': 1, 'b': 2}]

    def test_string_sort(self, store):
        result = run_query(store, 'products', params={'sortBy': 'name'})
        assert [r['name'] for r in result] == ['Chair', 'Desk', 'Lamp', 'Sofa']

    def test_descending_numeric_sort(self, store):
        result = run_query(store, 'products', params={'sortBy': 'price desc'})
        assert [r['price'] for r in result] == [600, 500, 150, 50]

    def test_sort_is_stable(self):
        records = [{'k': 1, 'n': 'first'}, {'k': 0, 'n': 'x'}, {'k': 1, 'n': 'second'}]
        assert [r['n'] for r in sort_records(records, 'k')] == ['x', 'first', 'second']

    def test_compare_values(self):
        assert compare_values(2, 10) < 0
        assert compare_values('b', 'A') > 0
        assert compare_values('a', 'A') < 0
        assert compare_values(None, 'a') < 0

    def test_parse_sort(self):
        assert parse_sort('name, price desc,') == [('name', False), ('price', True)]
        with pytest.raises(BadRequest):
            parse_sort('name sideways')


class TestPaging:
    """Offset, page size and distinct."""

    def test_offset_and_page_size(self, store):
        result = run_query(store, 'products', params={'offset': '1', 'pageSize': '2'})
        assert _ids(result) == ['p2', 'p3']

    def test_page_size_default_applies_only_when_requested(self):
        store = CollectionStore({'items': {str(i): {'n': i} for i in range(15)}})
        assert len(run_query(store, 'items')) == 15
        assert len(run_query(store, 'items', params={'pageSize': ''})) == 10

    def test_invalid_offset_raises_bad_request(self, store):
        with pytest.raises(BadRequest):
            run_query(store, 'products', params={'offset': 'abc'})

    def test_distinct_keeps_first_occurrence(self, store):
        result = run_query(store, 'products', params={'distinct': 'category'})
        assert _ids(result) == ['p1', 'p2']


class TestProjection:
    """Count, select and load."""

    def test_count_short_circuits(self, store, protected_store):
        result = run_query(store, 'products', params={
            'where': 'category="office"',
            'count': '',
            'select': 'name',
            'load': 'owner=ownerId:users',
        }, protected_store=protected_store)
        assert result == 2

    def test_count_ignores_false_flag(self, store):
        assert isinstance(run_query(store, 'products', params={'count': 'false'}), list)

    def test_select_projects_fields(self, store):
        result = run_query(store, 'products', params={'select': '_id,name'})
        assert result[0] == {'_id': 'p1', 'name': 'Lamp'}

    def test_select_on_single_record(self, store):
        assert run_query(store, 'products', 'p2', {'select': 'price'}) == {'price': 150}

    def test_load_joins_principal_from_protected_store(self, store, protected_store):
        result = run_query(store, 'products', 'p1', {'load': 'owner=ownerId:users'}, protected_store)
        assert result['owner']['username'] == 'Peter'
        assert 'hashedPassword' not in result['owner']

    def test_load_missing_foreign_record_attaches_none(self, store, protected_store):
        result = run_query(store, 'products', 'p4', {'load': 'owner=ownerId:users'}, protected_store)
        assert result['owner'] is None

    def test_load_from_public_store(self):
        store = CollectionStore({
            'comments': {'c1': {'text': 'Nice', 'productId': 'p1'}},
            'products': {'p1': {'name': 'Lamp'}},
        })
        result = run_query(store, 'comments', params={'load': 'product=productId:products'})
        assert result[0]['product'] == {'name': 'Lamp', '_id': 'p1'}

    def test_parse_load_rejects_malformed_clause(self):
        assert parse_load('a=b:c')[0].foreign_collection == 'c'
        with pytest.raises(BadRequest):
            parse_load('owner=ownerId')


class TestBaseFetch:
    """Base fetch selection."""

    def test_no_collection_lists_names(self, store):
        assert run_query(store) == ['products']

    def test_single_record(self, store):
        assert run_query(store, 'products', 'p3')['name'] == 'Chair'

    def test_missing_record_raises_not_found(self, store):
        with pytest.raises(NotFound):
            run_query(store, 'products', 'missing')


class TestAuthorizeHook:
    """The authorize callback runs on fetched records before any shaping stage."""

    def test_sees_whole_record_before_select(self, store):
        seen = []
        result = run_query(store, 'products', 'p2', {'select': 'name'}, authorize=seen.append)

        assert seen[0]['ownerId'] == 'u2'
        assert seen[0]['_id'] == 'p2'
        assert result == {'name': 'Desk'}

    def test_redaction_carries_into_projection(self, store):
        def hide_price(records):
            for record in records:
                record.pop('price', None)

        result = run_query(store, 'products', params={'select': 'name,price', 'pageSize': '2'},
                           authorize=hide_price)
        assert result == [{'name': 'Lamp'}, {'name': 'Desk'}]

    def test_rejection_aborts_pipeline(self, store):
        def deny(data):
            raise Forbidden()

        with pytest.raises(Forbidden):
            run_query(store, 'products', params={'count': ''}, authorize=deny)

    def test_not_called_for_collection_listing(self, store):
        seen = []
        assert run_query(store, authorize=seen.append) == ['products']
        assert seen == []
