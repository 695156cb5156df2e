"""Database layer: models, engine configuration and the SQL role store."""
