# passkit/tasks/__init__.py

"""
Celery task modules. Importing a module registers its tasks on the shared
Celery app; the worker imports them through CeleryConfig.imports.
"""
