'''Conversion of workflow objects to and from JSON-ready dictionaries.

The election state itself is kept in memory; storing it durably is up to the
environment. This module provides the snapshot format for that: any object
decorated with :func:`simple_serialization` (or providing its own ``to_dict``
method) can be turned into a structure of plain dicts, lists and atomic values
that survives ``json.dumps()``, and restored with :func:`from_dict`.

Values JSON cannot express directly are written as typed objects:

-   ``{'class': 'module.Name', ...}`` for serializable objects,
-   ``{'type': 'module.Enum', 'value': ...}`` for enum members,
-   ``{'type': 'tuple', 'value': [...]}`` (likewise ``frozenset``, and
    ``bytes`` with a hex string value) for identities JSON has no type for,
-   ``{'type': 'dict', 'keys': [...], 'values': [...]}`` for dictionaries
    keyed by anything but strings,
-   ``{'callable': 'module.name'}`` for module-level functions.
'''

import sys
import enum
import inspect
import importlib
from typing import Any, List, Dict, Callable


ZERO_PARAMS: List[str] = ['args', 'kwargs']


def simple_serialization(class_: type) -> type:
    '''A decorator to provide a simple to_dict() serialization method.

    The resulting method will serialize all object attributes corresponding
    to the class's constructor parameter names, so the class must store
    its constructor parameters unchanged under the same names.

    :param class_: The class to add the method to.
    '''
    param_names = [
        name for name in inspect.signature(class_.__init__).parameters
        if name != 'self'
    ]
    if param_names == ZERO_PARAMS and class_.__init__ is object.__init__:
        param_names = []

    def to_dict(self) -> Dict[str, Any]:
        out_dict = {'class': scoped_class_name(self)}
        for attr in param_names:
            out_dict[attr] = serialize_value(getattr(self, attr))
        return out_dict

    class_.to_dict = to_dict
    return class_


def serialize_value(value: Any) -> Any:
    if hasattr(value, 'to_dict'):
        return value.to_dict()
    elif isinstance(value, enum.Enum):
        return {'type': scoped_class_name(value), 'value': value.value}
    elif isinstance(value, tuple(ATOMIC_TYPES)):
        return value
    elif type(value) in ENCODERS:
        return {
            'type': type(value).__name__,
            'value': ENCODERS[type(value)](value),
        }
    elif isinstance(value, dict):
        if all(isinstance(key, str) for key in value.keys()):
            return {key: serialize_value(val) for key, val in value.items()}
        return {
            'type': 'dict',
            'keys': [serialize_value(key) for key in value.keys()],
            'values': [serialize_value(val) for val in value.values()]
        }
    elif isinstance(value, list):
        return [serialize_value(val) for val in value]
    elif inspect.isfunction(value):
        return {'callable': '.'.join((value.__module__, value.__name__))}
    else:
        raise ValueError(f'cannot serialize {value!r} to dict format')


def deserialize_value(value: Any) -> Any:
    if isinstance(value, dict):
        if 'type' in value and is_scoped_identifier(value['type']):
            return deserialize_typed(value)
        elif 'class' in value and is_scoped_identifier(value['class']):
            return deserialize_class(value)
        elif 'callable' in value and is_scoped_identifier(value['callable']):
            return get_object(value['callable'])
        else:
            return {key: deserialize_value(val) for key, val in value.items()}
    elif isinstance(value, tuple(ATOMIC_TYPES)):
        return value
    elif isinstance(value, list):
        return [deserialize_value(val) for val in value]
    else:
        raise ValueError(f'cannot deserialize {value!r}, type unknown')


def deserialize_typed(typedef: Dict[str, Any]) -> Any:
    typename = typedef['type']
    if typename == 'dict':
        return dict(zip(
            [deserialize_value(key) for key in typedef['keys']],
            [deserialize_value(val) for val in typedef['values']]
        ))
    elif typename in DECODERS:
        return DECODERS[typename](typedef['value'])
    typeobj = get_object(typename)
    if isinstance(typeobj, type) and issubclass(typeobj, enum.Enum):
        return typeobj(typedef['value'])
    raise ValueError(f'invalid typed value contents: {typedef!r}')


def deserialize_class(clsdef: Dict[str, Any]) -> Any:
    cls = get_object(clsdef['class'])
    params = clsdef.copy()
    del params['class']
    if hasattr(cls, 'from_dict'):
        return cls.from_dict(params)
    return cls(**{key: deserialize_value(val) for key, val in params.items()})


def get_object(identifier: str) -> Any:
    if '.' not in identifier:
        raise ValueError(f'module-qualified name expected, got {identifier!r}')
    module, name = identifier.rsplit('.', 1)
    if module not in sys.modules:
        importlib.import_module(module)
    return getattr(sys.modules[module], name)


def from_dict(value: Dict[str, Any]) -> Any:
    """Restore a workflow object from a JSON-like dictionary.

    :param value: A dictionary created by :func:`to_dict`.
    """
    if not isinstance(value, dict):
        raise ValueError('invalid ballotbox object def: dict expected,'
                         f'got {value!r}')
    elif 'class' not in value:
        raise ValueError('invalid ballotbox object def: must have a class key')
    elif not is_scoped_identifier(value['class']):
        inval_cls = value['class']
        raise ValueError(f"invalid ballotbox class def: {inval_cls}")
    else:
        return deserialize_value(value)


def to_dict(obj: Any) -> Dict[str, Any]:
    """Serialize a workflow object to a JSON-ready dictionary.

    :param obj: An election workflow, voter, proposal or event.
    """
    return serialize_value(obj)


def is_scoped_identifier(value: Any):
    return (
        isinstance(value, str)
        and not value.startswith('.')
        and all(chunk.isidentifier() for chunk in value.split('.'))
    )


def scoped_class_name(value: Any):
    cls = value.__class__
    return '.'.join((cls.__module__, cls.__name__))


ATOMIC_TYPES: List[type] = [
    str, int, float, bool, type(None),
]

ENCODERS: Dict[type, Callable[[Any], Any]] = {
    tuple: lambda seq: [serialize_value(item) for item in seq],
    frozenset: lambda seq: [serialize_value(item) for item in seq],
    bytes: bytes.hex,
}

DECODERS: Dict[str, Callable[[Any], Any]] = {
    'tuple': lambda items: tuple(deserialize_value(item) for item in items),
    'frozenset': lambda items: frozenset(
        deserialize_value(item) for item in items
    ),
    'bytes': bytes.fromhex,
}
