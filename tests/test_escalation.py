from unittest.mock import MagicMock, patch

import pytest
from bson import ObjectId

from errors import GrantNotApplied
from escalation import DecideRequestBody, RoleEscalationWorkflow
from schemas import ADMIN_REQUESTS, USERS


def _submit(client, auth_headers, email="b@y.com", request_type="admin"):
    response = client.post("/admin/requests", json={
        "userName": "Bee", "userEmail": email, "requestType": request_type,
    }, headers=auth_headers(email))
    assert response.status_code == 201
    return response.json()["requestId"]


@pytest.fixture
def admin(make_account):
    return make_account("admin@x.com", role="admin")


class TestSubmit:
    def test_creates_pending_request(self, client, auth_headers, make_account, db):
        make_account("b@y.com")
        request_id = _submit(client, auth_headers)
        request = db[ADMIN_REQUESTS].find_one({"_id": ObjectId(request_id)})
        assert request["requestStatus"] == "pending"
        assert request["requestType"] == "admin"
        assert request["requestTime"] is not None

    @pytest.mark.parametrize("missing", ["userName", "userEmail", "requestType"])
    def test_missing_field(self, client, auth_headers, missing):
        body = {"userName": "Bee", "userEmail": "b@y.com", "requestType": "chef"}
        body.pop(missing)
        response = client.post("/admin/requests", json=body, headers=auth_headers("b@y.com"))
        assert response.status_code == 400

    def test_blank_name(self, client, auth_headers):
        response = client.post("/admin/requests", json={
            "userName": "   ", "userEmail": "b@y.com", "requestType": "chef",
        }, headers=auth_headers("b@y.com"))
        assert response.status_code == 400

    def test_unknown_request_type(self, client, auth_headers):
        response = client.post("/admin/requests", json={
            "userName": "Bee", "userEmail": "b@y.com", "requestType": "owner",
        }, headers=auth_headers("b@y.com"))
        assert response.status_code == 400

    def test_cannot_submit_for_someone_else(self, client, auth_headers):
        response = client.post("/admin/requests", json={
            "userName": "Bee", "userEmail": "b@y.com", "requestType": "admin",
        }, headers=auth_headers("mallory@x.com"))
        assert response.status_code == 403


class TestDecide:
    def test_accept_admin_request(self, client, auth_headers, make_account, admin, db):
        make_account("b@y.com")
        request_id = _submit(client, auth_headers)
        response = client.patch(f"/admin/requests/{request_id}", json={
            "action": "accept", "email": "b@y.com", "requestType": "admin",
        }, headers=auth_headers("admin@x.com"))
        assert response.status_code == 200
        assert db[USERS].find_one({"email": "b@y.com"})["role"] == "admin"
        assert db[ADMIN_REQUESTS].find_one({"_id": ObjectId(request_id)})["requestStatus"] == "approved"

    def test_accept_chef_request_assigns_chef_id(self, client, auth_headers, make_account, admin, db):
        make_account("c@y.com")
        request_id = _submit(client, auth_headers, email="c@y.com", request_type="chef")
        response = client.patch(f"/admin/requests/{request_id}", json={"action": "accept"},
                                headers=auth_headers("admin@x.com"))
        assert response.status_code == 200
        account = db[USERS].find_one({"email": "c@y.com"})
        assert account["role"] == "chef"
        assert account["chefId"]
        assert response.json()["chefId"] == account["chefId"]
        assert db[ADMIN_REQUESTS].find_one({"_id": ObjectId(request_id)})["requestStatus"] == "approved"

    def test_chef_id_collision_is_retried(self, client, auth_headers, make_account, admin, db):
        make_account("taken@y.com", role="chef", chef_id="chef-1111")
        make_account("c@y.com")
        request_id = _submit(client, auth_headers, email="c@y.com", request_type="chef")
        with patch("escalation.generate_chef_id", side_effect=["chef-1111", "chef-2222"]):
            client.patch(f"/admin/requests/{request_id}", json={"action": "accept"},
                         headers=auth_headers("admin@x.com"))
        assert db[USERS].find_one({"email": "c@y.com"})["chefId"] == "chef-2222"

    def test_reject(self, client, auth_headers, make_account, admin, db):
        make_account("b@y.com")
        request_id = _submit(client, auth_headers)
        response = client.patch(f"/admin/requests/{request_id}", json={"action": "reject"},
                                headers=auth_headers("admin@x.com"))
        assert response.status_code == 200
        assert db[USERS].find_one({"email": "b@y.com"})["role"] == "user"
        assert db[ADMIN_REQUESTS].find_one({"_id": ObjectId(request_id)})["requestStatus"] == "rejected"

    def test_decided_request_is_terminal(self, client, auth_headers, make_account, admin, db):
        make_account("b@y.com")
        request_id = _submit(client, auth_headers)
        client.patch(f"/admin/requests/{request_id}", json={"action": "reject"}, headers=auth_headers("admin@x.com"))
        response = client.patch(f"/admin/requests/{request_id}", json={"action": "accept"},
                                headers=auth_headers("admin@x.com"))
        assert response.status_code == 400
        assert db[USERS].find_one({"email": "b@y.com"})["role"] == "user"

    def test_accept_without_account(self, client, auth_headers, admin, db):
        request_id = _submit(client, auth_headers, email="ghost@y.com")
        response = client.patch(f"/admin/requests/{request_id}", json={"action": "accept"},
                                headers=auth_headers("admin@x.com"))
        assert response.status_code == 404
        assert db[ADMIN_REQUESTS].find_one({"_id": ObjectId(request_id)})["requestStatus"] == "pending"

    def test_mismatched_email(self, client, auth_headers, make_account, admin):
        make_account("b@y.com")
        request_id = _submit(client, auth_headers)
        response = client.patch(f"/admin/requests/{request_id}", json={"action": "accept", "email": "x@y.com"},
                                headers=auth_headers("admin@x.com"))
        assert response.status_code == 400

    def test_only_admin_decides(self, client, auth_headers, make_account):
        make_account("b@y.com")
        request_id = _submit(client, auth_headers)
        response = client.patch(f"/admin/requests/{request_id}", json={"action": "accept"},
                                headers=auth_headers("b@y.com"))
        assert response.status_code == 403

    def test_unknown_request(self, client, auth_headers, admin):
        response = client.patch(f"/admin/requests/{ObjectId()}", json={"action": "accept"},
                                headers=auth_headers("admin@x.com"))
        assert response.status_code == 404

    def test_admin_lists_requests(self, client, auth_headers, make_account, admin):
        make_account("b@y.com")
        _submit(client, auth_headers)
        response = client.get("/admin/requests", headers=auth_headers("admin@x.com"))
        assert [r["userEmail"] for r in response.json()["data"]] == ["b@y.com"]


def test_request_stays_pending_when_grant_modifies_nothing(db):
    request_id = db[ADMIN_REQUESTS].insert_one({
        "userName": "Bee", "userEmail": "b@y.com", "requestType": "admin", "requestStatus": "pending",
    }).inserted_id
    accounts = MagicMock()
    accounts.get_by_email.return_value = {"email": "b@y.com", "role": "user"}
    accounts.set_role.return_value = 0

    workflow = RoleEscalationWorkflow(db, accounts)
    with pytest.raises(GrantNotApplied):
        workflow.decide(str(request_id), DecideRequestBody(action="accept"))

    accounts.set_role.assert_called_once_with("b@y.com", "admin", None)
    assert db[ADMIN_REQUESTS].find_one({"_id": request_id})["requestStatus"] == "pending"
