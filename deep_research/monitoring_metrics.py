from prometheus_client import Counter, Histogram

SEARCH_REQUESTS = Counter("search_requests_total", "Search requests", ["provider"])
SEARCH_ERRORS   = Counter("search_errors_total",   "Search errors",   ["provider"])
SEARCH_LATENCY  = Histogram("search_request_seconds", "Search latency", ["provider"])

FETCH_FAILURES  = Counter("fetch_failures_total", "Fetch or extraction failures", ["reason"])
RESEARCH_ACTIONS = Counter("research_actions_total", "Controller actions", ["mode", "action", "status"])
