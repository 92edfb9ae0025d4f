from typing import Dict
from functools import partial, update_wrapper


class method_decorator_meta(type):
    def __instancecheck__(self, method):
        """ Metaclass magic enables isinstance() checks even for decorators wrapped with other decorators """
        # Recursion stopper
        if method is None:
            return False
        # Check the type: isinstance() on self, or on the wrapped object
        return issubclass(type(method), self) \
               or isinstance(getattr(method, '__wrapped__', None), self)


class method_decorator(metaclass=method_decorator_meta):
    """ A decorator that marks a method, stores metadata on it, and lets you collect marked methods

        The important goals here are:
        1) to be able to mark methods,
        2) to be able to execute them transparently,
        3) to be able to collect them by name.

        The decorator is a descriptor: the decorator object stands in the class' __dict__,
        but accessing the attribute on an instance gives you the bound method.
        Accessing it on the class gives you the decorator object itself, with all its metadata.
    """

    # The name of the property to install onto every wrapped method
    # Please override, or set `None` if this behavior is undesired
    METHOD_PROPERTY_NAME = 'method_decorator'

    def __init__(self, method=None):
        # Handler method
        self.method = None
        # Handler method function name
        self.method_name = None

        # Used without parentheses: @decorator
        if method is not None:
            self(method)

    def __call__(self, handler_method):
        # Make sure the object itself is callable only once
        if self.method is not None:
            raise RuntimeError("@{decorator}, when used, is not itself callable".format(decorator=self.__class__.__name__))

        self.method = handler_method
        self.method_name = handler_method.__name__

        # Store ourselves as a property of the wrapped function
        if self.METHOD_PROPERTY_NAME:
            setattr(self.method, self.METHOD_PROPERTY_NAME, self)

        update_wrapper(self, self.method)
        return self  # This is what is saved on the class' __dict__

    def __get__(self, instance, owner):
        """ Magic descriptor: return the wrapped method when accessed on an instance """
        if instance is None:
            # Accessing a class attribute directly: we give the decorator object
            return self
        else:
            # Accessing an object's attribute: bind `self` manually
            return partial(self.method, instance)

    def __repr__(self):
        return '@{decorator}({func})'.format(decorator=self.__class__.__name__, func=self.method_name)

    # region: Usage API

    @classmethod
    def is_decorated(cls, method) -> bool:
        """ Check whether the given method is decorated with @cls() """
        return isinstance(method, cls)

    @classmethod
    def all_decorators_from(cls, Klass: type) -> Dict[str, 'method_decorator']:
        """ Get all decorator objects from a class, including inherited ones

            Subclasses win: a method overridden without the decorator is not collected.

            :return: { method name: decorator }
        """
        if not isinstance(Klass, type):
            raise ValueError('Can only collect decorators from a class, not from an object {}'.format(Klass))

        found = {}
        for base in reversed(Klass.__mro__):
            for name, attr in vars(base).items():
                if cls.is_decorated(attr):
                    found[name] = attr
                else:
                    found.pop(name, None)
        return found

    # endregion
