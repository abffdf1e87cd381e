"""
BatteryLens dashboard API.

FastAPI application serving uploads, batch extraction, chart views and
session export/import to the browser front end.
"""
