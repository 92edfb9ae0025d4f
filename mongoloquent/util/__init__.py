from .method_decorator import method_decorator, method_decorator_meta
