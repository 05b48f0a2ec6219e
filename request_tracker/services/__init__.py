# =============================================================================
# Services Package — Tracking Logic
# =============================================================================
# Contains the core logic, separated from the web layer:
#   - patterns.py: path patterns and "module.sub|Label" directives
#   - registry.py: @track_request / @track_module handler registry
#   - classifier.py: endpoint → (module, submodule, label), pure function
#   - device.py: user agent → device type, browser, platform
#   - aggregator.py: atomic summary and visit upserts
#   - pipeline.py: snapshot → skip / summarize / detail, TrackingResult
#   - sessions.py: session token → role lookup
#   - retention.py: date-range deletes and retention windows
#   - reporting.py: reporting query builders
# =============================================================================
