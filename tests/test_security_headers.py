def test_csp_header(client):
    """The JSON API forbids loading or framing any content."""
    response = client.get('/api/ping')
    assert 'Content-Security-Policy' in response.headers
    csp = response.headers['Content-Security-Policy']

    assert "default-src 'none'" in csp
    assert "frame-ancestors 'none'" in csp


def test_standard_security_headers(client):
    response = client.get('/health')
    assert response.headers['X-Frame-Options'] == 'DENY'
    assert response.headers['X-Content-Type-Options'] == 'nosniff'
    assert response.headers['Referrer-Policy'] == 'strict-origin-when-cross-origin'
    assert response.headers['Strict-Transport-Security'].startswith('max-age=')
    assert 'camera=()' in response.headers['Permissions-Policy']


def test_api_responses_are_not_cached(client):
    assert client.get('/api/ping').headers['Cache-Control'] == 'no-store'
    assert 'Cache-Control' not in client.get('/health').headers
