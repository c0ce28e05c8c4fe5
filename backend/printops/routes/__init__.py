from importlib import import_module

modules = [
    'auth',
    'users',
    'organizations',
    'printers',
    'projects',
    'tasks',
    'materials',
    'reports',
    'audit',
]

for m in modules:
    import_module(f'.{m}', __name__)

__all__ = modules
