# =============================================================================
# Request Access Tracker
# =============================================================================
# Records who accessed an HTTP application and which business areas they
# touched: one aggregate row per user/role/day, plus optional per-endpoint
# visit rows classified into module/submodule/label.
#
# Package structure:
#   request_tracker/
#   ├── api/          → tracking middleware and the reporting router
#   ├── db/           → Database engines, sessions, and ORM models
#   ├── models/       → Pydantic V2 schemas (request snapshot, responses)
#   ├── services/     → Classifier, handler registry, aggregators, pipeline,
#   │                    retention and reporting queries
#   └── workers/      → Celery task definitions and configuration
# =============================================================================
