def test_root(anon_client):
    assert anon_client.get("/").json() == {"message": "Storefront API running"}


def test_error_body_carries_stack_outside_production(anon_client):
    body = anon_client.get("/api/cart").json()
    assert body["message"]
    assert "stack" in body
