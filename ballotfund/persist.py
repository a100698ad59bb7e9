'''Serialization of election state to JSON-ready dictionaries.

Election records (cycles, candidate profiles, voter and funding records) are
exported as dictionaries naming their scoped class under the ``class`` key,
with one more key per constructor parameter::

    {'class': 'ballotfund.escrow.FundingRecord',
     'candidate': 'alice', 'amount_pledged': 5}

Values JSON cannot carry natively, that is lifecycle phases and decimal
amounts, become ``{'type': <scoped type name>, 'value': <plain value>}``.
Records keyed by account (votes and pledges) become plain dictionaries when
all the accounts are strings, and a ``{'type': 'dict', 'keys': [...],
'values': [...]}`` pair otherwise.

The value transfer ledger is owned by the host and is never part of the
exported state.
'''

import enum
import importlib
import inspect
from decimal import Decimal
from typing import Any, Dict, Tuple


JSON_ATOMS: Tuple[type, ...] = (str, int, float, bool, type(None))


def simple_serialization(class_: type) -> type:
    '''A decorator giving a record class a to_dict() method.

    The method exports the attributes named like the constructor parameters,
    so the record must keep each of its parameters (possibly behind
    a read-only property).

    :param class_: The record class to add the method to.
    '''
    param_names = [
        name for name in inspect.signature(class_.__init__).parameters
        if name != 'self'
    ]

    def to_dict(self) -> Dict[str, Any]:
        out_dict = {'class': scoped_class_name(self)}
        for name in param_names:
            out_dict[name] = serialize_value(getattr(self, name))
        return out_dict

    class_.to_dict = to_dict
    return class_


def serialize_value(value: Any) -> Any:
    if hasattr(value, 'to_dict'):
        return value.to_dict()
    elif isinstance(value, enum.Enum):
        return {'type': scoped_class_name(value), 'value': value.value}
    elif isinstance(value, Decimal):
        # amounts may be given as decimals by the host ledger
        return {'type': 'decimal.Decimal', 'value': str(value)}
    elif isinstance(value, JSON_ATOMS):
        return value
    elif isinstance(value, dict):
        return serialize_keyed(value)
    elif isinstance(value, (list, tuple)):
        return [serialize_value(item) for item in value]
    else:
        raise ValueError(f'cannot serialize {value!r} to dict format')


def serialize_keyed(records: Dict[Any, Any]) -> Dict[str, Any]:
    if all(isinstance(key, str) for key in records):
        return {key: serialize_value(val) for key, val in records.items()}
    return {
        'type': 'dict',
        'keys': [serialize_value(key) for key in records],
        'values': [serialize_value(val) for val in records.values()],
    }


def deserialize_value(value: Any) -> Any:
    if isinstance(value, dict):
        if is_scoped_identifier(value.get('type')):
            return deserialize_typed(value)
        elif is_scoped_identifier(value.get('class')):
            return deserialize_class(value)
        else:
            return {key: deserialize_value(val) for key, val in value.items()}
    elif isinstance(value, JSON_ATOMS):
        return value
    elif isinstance(value, list):
        return [deserialize_value(val) for val in value]
    else:
        raise ValueError(f'cannot deserialize {value!r}, type unknown')


def deserialize_typed(typedef: Dict[str, Any]) -> Any:
    if typedef['type'] == 'dict':
        return dict(zip(
            [deserialize_value(key) for key in typedef['keys']],
            [deserialize_value(val) for val in typedef['values']]
        ))
    elif 'value' not in typedef:
        raise ValueError(f'invalid typed value contents: {typedef!r}')
    typeobj = get_object(typedef['type'])
    return typeobj(typedef['value'])


def deserialize_class(clsdef: Dict[str, Any]) -> Any:
    cls = get_object(clsdef['class'])
    params = {key: val for key, val in clsdef.items() if key != 'class'}
    if hasattr(cls, 'from_dict'):
        return cls.from_dict(params)
    return cls(**{key: deserialize_value(val) for key, val in params.items()})


def get_object(identifier: str) -> Any:
    module, dot, name = identifier.rpartition('.')
    if not dot:
        raise ValueError(f'invalid ballotfund object path: {identifier}')
    return getattr(importlib.import_module(module), name)


def from_dict(value: Dict[str, Any]) -> Any:
    """Restore an election or election record from a JSON-like dictionary.

    :param value: A dictionary created by :func:`to_dict`.
    """
    if not isinstance(value, dict):
        raise ValueError('invalid ballotfund object def: dict expected,'
                         f' got {value!r}')
    elif 'class' not in value:
        raise ValueError('invalid ballotfund object def: must have a class key')
    elif not is_scoped_identifier(value['class']):
        inval_cls = value['class']
        raise ValueError(f"invalid ballotfund class def: {inval_cls}")
    else:
        return deserialize_value(value)


def to_dict(obj: Any) -> Dict[str, Any]:
    """Serialize an election or election record to a JSON-ready dictionary.

    :param obj: An object providing a `to_dict()` method (the election
        records get one from the simple_serialization decorator).
    """
    return serialize_value(obj)


def is_scoped_identifier(value: Any) -> bool:
    return (
        isinstance(value, str)
        and all(chunk.isidentifier() for chunk in value.split('.'))
    )


def scoped_class_name(value: Any) -> str:
    cls = value.__class__
    return '.'.join((cls.__module__, cls.__name__))
