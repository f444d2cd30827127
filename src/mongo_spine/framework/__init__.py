"""
mongo-spine framework - the import path from query text to flat records.

Use: from mongo_spine.framework.sources import PhaseController, MongoDataSource
"""
