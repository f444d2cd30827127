"""
mongo-spine - MongoDB import source for schema-oriented indexing pipelines.

- mongo_spine.core: errors, logging, settings, value kinds, date rewriting
- mongo_spine.framework.sources: path flattening, cursor streams, the
  MongoDB data source and the phase-driven query controller
"""

__version__ = "0.1.0"
