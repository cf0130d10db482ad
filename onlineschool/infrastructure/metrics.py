from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Метрики для HTTP запросов
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint']
)

# Попытки входа: success / invalid
login_attempts_total = Counter('login_attempts_total', 'Login attempts', ['outcome'])

# Переходы на запасной путь чтения (например, join -> отдельные запросы)
store_fallbacks_total = Counter('store_fallbacks_total', 'Store read fallbacks', ['operation'])

def metrics_endpoint():
    """Endpoint для Prometheus метрик"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
