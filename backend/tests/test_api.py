"""HTTP surface tests using FastAPI's TestClient"""

AUTHORIZATION_ID = "A-1"
BASE = f"/api/v1/prior-auth-workflow/{AUTHORIZATION_ID}"


def test_missing_user_header_is_unauthorized(api_client, authorization):
    response = api_client.post(f"{BASE}/initialize")

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "AUTHENTICATION_ERROR"


def test_initialize_and_reinitialize(api_client, authorization, headers):
    response = api_client.post(f"{BASE}/initialize", headers=headers)

    assert response.status_code == 201
    body = response.json()
    assert body["current_step"] == 1
    assert len(body["steps"]) == 10
    assert body["steps"][0]["status"] == "in_progress"
    assert response.headers["X-Correlation-Id"] == "COR-test-1"

    again = api_client.post(f"{BASE}/initialize", headers=headers)
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "ALREADY_INITIALIZED"


def test_initialize_unknown_authorization(api_client, headers):
    response = api_client.post("/api/v1/prior-auth-workflow/A-404/initialize", headers=headers)
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "AUTHORIZATION_NOT_FOUND"


def test_complete_step_flow(api_client, initialized, headers):
    response = api_client.post(
        f"{BASE}/steps/1/complete",
        json={"formData": {"treatmentType": "MRI"}, "notes": "ordered"},
        headers=headers
    )
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "completed"
    assert body["completed_by"] == "u1"
    assert body["form_data"] == {"treatmentType": "MRI"}

    current = api_client.get(f"{BASE}/current-step", headers=headers)
    assert current.status_code == 200
    assert current.json()["step_number"] == 2
    assert current.json()["assigned_to"] == "u1"


def test_complete_step_errors(api_client, initialized, headers):
    out_of_sequence = api_client.post(f"{BASE}/steps/4/complete", json={"formData": {}}, headers=headers)
    assert out_of_sequence.status_code == 409
    assert out_of_sequence.json()["error"]["code"] == "OUT_OF_SEQUENCE"
    assert out_of_sequence.json()["error"]["details"]["current_step"] == 1

    out_of_range = api_client.post(f"{BASE}/steps/0/complete", json={"formData": {}}, headers=headers)
    assert out_of_range.status_code == 400
    assert out_of_range.json()["error"]["code"] == "VALIDATION_ERROR"

    not_a_number = api_client.post(f"{BASE}/steps/one/complete", json={"formData": {}}, headers=headers)
    assert not_a_number.status_code == 400

    bad_form = api_client.post(f"{BASE}/steps/1/complete", json={"formData": ["x"]}, headers=headers)
    assert bad_form.status_code == 400


def test_current_step_is_404_before_initialization(api_client, authorization, headers):
    response = api_client.get(f"{BASE}/current-step", headers=headers)
    assert response.status_code == 404


def test_list_steps(api_client, initialized, headers):
    response = api_client.get(f"{BASE}/steps", headers=headers)

    assert response.status_code == 200
    assert [step["step_number"] for step in response.json()] == list(range(1, 11))


def test_generate_forms(api_client, initialized, ca_template, headers):
    api_client.post(f"{BASE}/steps/1/complete", json={"formData": {"treatmentType": "MRI"}}, headers=headers)

    response = api_client.post(f"{BASE}/generate-forms", json={"state": "ca"}, headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["state"] == "CA"
    assert body["form_package_path"].startswith(f"/forms/packages/{AUTHORIZATION_ID}-CA-")

    missing = api_client.post(f"{BASE}/generate-forms", json={"state": "TX"}, headers=headers)
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "TEMPLATE_NOT_FOUND"

    too_long = api_client.post(f"{BASE}/generate-forms", json={"state": "CAL"}, headers=headers)
    assert too_long.status_code == 400


def test_audit_events_query(api_client, initialized, headers):
    api_client.post(f"{BASE}/steps/1/complete", json={"formData": {"treatmentType": "MRI"}}, headers=headers)

    response = api_client.get(
        "/api/v1/audit/events",
        params={"resource_type": "prior_authorization", "resource_id": AUTHORIZATION_ID},
        headers=headers
    )

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert [item["action"] for item in body["items"]] == ["STEP_COMPLETED", "WORKFLOW_INITIALIZED"]
    completed = body["items"][0]
    assert completed["actor_id"] == "u1"
    assert completed["ip_address"] == "testclient"
    assert completed["user_agent"] == "testclient"
    assert completed["field_changes"]["type"] == "UPDATE"


def test_audit_events_pagination(api_client, initialized, headers):
    api_client.post(f"{BASE}/steps/1/complete", json={"formData": {}}, headers=headers)
    api_client.post(f"{BASE}/steps/2/complete", json={"formData": {}}, headers=headers)

    response = api_client.get("/api/v1/audit/events", params={"page": 2, "page_size": 2}, headers=headers)

    body = response.json()
    assert body["total"] == 3
    assert body["page"] == 2
    assert [item["action"] for item in body["items"]] == ["WORKFLOW_INITIALIZED"]
