"""Template validation, rule generation, activation and bracket preview over HTTP."""
import pytest
from fastapi.testclient import TestClient


def pools_document(with_rules=False):
    doc = {
        "name": "Pools to bracket",
        "phases": [
            {
                "name": "Pool Play",
                "phaseType": "Pools",
                "sortOrder": 1,
                "incomingSlotCount": 16,
                "advancingSlotCount": 8,
                "poolCount": 4,
            },
            {"name": "Bracket", "phaseType": "SingleElimination", "sortOrder": 2, "incomingSlotCount": 8},
        ],
        "advancementRules": [],
    }
    if with_rules:
        doc["advancementRules"] = [
            {
                "sourcePhaseOrder": 1,
                "sourcePoolIndex": pool,
                "finishPosition": position,
                "targetPhaseOrder": 2,
                "targetSlotNumber": pool * 2 + position,
            }
            for pool in range(4)
            for position in (1, 2)
        ]
    return doc


@pytest.fixture
def saved_template(client: TestClient):
    response = client.post("/api/templates", json={"name": "Pools", "structure": pools_document(with_rules=True)})
    assert response.status_code == 201
    return response.json()


# ----------------------------------------------------------------------------
# Stateless endpoints
# ----------------------------------------------------------------------------


def test_validate_reports_violations_with_200(client: TestClient):
    doc = pools_document(with_rules=True)
    doc["phases"][1]["bestOf"] = 2

    response = client.post("/api/templates/validate", json=doc)

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is False
    assert [v["code"] for v in body["violations"]] == ["BEST_OF_INVALID"]
    assert body["violations"][0]["path"] == "phases[1].bestOf"


def test_validate_warnings_only(client: TestClient):
    body = client.post("/api/templates/validate", json=pools_document()).json()

    assert body["ok"] is True
    assert [w["code"] for w in body["warnings"]] == ["ADVANCING_COUNT_MISMATCH"]


def test_auto_generate_rules(client: TestClient):
    response = client.post("/api/templates/auto-generate-rules", json={"template": pools_document()})

    assert response.status_code == 200
    body = response.json()
    rules = body["advancement_rules"]
    assert len(rules) == 8
    assert [(r["sourcePoolIndex"], r["finishPosition"], r["targetSlotNumber"]) for r in rules[:3]] == [
        (0, 1, 1),
        (0, 2, 2),
        (1, 1, 3),
    ]
    assert body["validation"]["ok"] is True
    assert body["validation"]["warnings"] == []
    assert all(p["phaseId"] for p in body["template"]["phases"])


def test_auto_generate_rules_by_finish(client: TestClient):
    response = client.post(
        "/api/templates/auto-generate-rules",
        json={"template": pools_document(), "slot_order": "by_finish"},
    )
    rules = response.json()["advancement_rules"]
    assert [r["sourcePoolIndex"] for r in rules[:4]] == [0, 1, 2, 3]


def test_auto_generate_rules_rejects_broken_phases(client: TestClient):
    doc = pools_document()
    doc["phases"][0]["phaseType"] = "Ladder"

    response = client.post("/api/templates/auto-generate-rules", json={"template": doc})

    assert response.status_code == 400
    assert response.json()["detail"]["violations"][0]["code"] == "PHASE_TYPE_UNKNOWN"


def test_auto_generate_rules_rejects_flexible(client: TestClient):
    doc = {"isFlexible": True, "generateBracket": {"type": "SingleElimination"}}
    response = client.post("/api/templates/auto-generate-rules", json={"template": doc})
    assert response.status_code == 400


# ----------------------------------------------------------------------------
# Persistence / activation
# ----------------------------------------------------------------------------


def test_save_assigns_phase_ids(saved_template):
    phase_ids = [p["phaseId"] for p in saved_template["structure"]["phases"]]

    assert all(pid.startswith("ph-") for pid in phase_ids)
    assert len(set(phase_ids)) == 2
    assert saved_template["is_active"] is False
    assert saved_template["validation"]["ok"] is True


def test_phase_ids_stable_across_loads(client: TestClient, saved_template):
    loaded = client.get(f"/api/templates/{saved_template['id']}").json()
    assert loaded["structure"]["phases"] == saved_template["structure"]["phases"]


def test_activate_valid_template(client: TestClient, saved_template):
    response = client.post(f"/api/templates/{saved_template['id']}/activate")

    assert response.status_code == 200
    assert response.json()["is_active"] is True
    assert response.json()["activated_at"] is not None


def test_activation_blocked_by_violations(client: TestClient):
    doc = pools_document(with_rules=True)
    doc["advancementRules"][0]["sourcePoolIndex"] = 7
    template = client.post("/api/templates", json={"name": "Broken", "structure": doc}).json()

    response = client.post(f"/api/templates/{template['id']}/activate")

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert [v["code"] for v in detail["violations"]] == ["RULE_POOL_INDEX_OUT_OF_RANGE"]
    assert client.get(f"/api/templates/{template['id']}").json()["is_active"] is False


def test_update_deactivates(client: TestClient, saved_template):
    client.post(f"/api/templates/{saved_template['id']}/activate")

    response = client.put(
        f"/api/templates/{saved_template['id']}",
        json={"name": "Pools v2", "structure": saved_template["structure"]},
    )

    assert response.status_code == 200
    assert response.json()["name"] == "Pools v2"
    assert response.json()["is_active"] is False
    assert [p["phaseId"] for p in response.json()["structure"]["phases"]] == [
        p["phaseId"] for p in saved_template["structure"]["phases"]
    ]


def test_missing_template(client: TestClient):
    assert client.get("/api/templates/999").status_code == 404
    assert client.post("/api/templates/999/activate").status_code == 404


def test_flexible_template_round_trip(client: TestClient):
    doc = {"isFlexible": True, "generateBracket": {"type": "DoubleElimination"}}
    template = client.post("/api/templates", json={"name": "Flex", "structure": doc}).json()

    assert template["is_flexible"] is True
    assert client.post(f"/api/templates/{template['id']}/activate").status_code == 200


def test_flexible_template_with_unknown_award(client: TestClient):
    doc = {
        "isFlexible": True,
        "generateBracket": {"type": "SingleElimination"},
        "exitPositions": [{"rank": 1, "awardType": "Platinum"}],
    }

    response = client.post("/api/templates/validate", json=doc)
    assert response.status_code == 200
    assert [v["code"] for v in response.json()["violations"]] == ["AWARD_TYPE_UNKNOWN"]

    template = client.post("/api/templates", json={"name": "Flex", "structure": doc}).json()
    response = client.post(f"/api/templates/{template['id']}/activate")
    assert response.status_code == 400
    assert [v["code"] for v in response.json()["detail"]["violations"]] == ["AWARD_TYPE_UNKNOWN"]


# ----------------------------------------------------------------------------
# Bracket preview
# ----------------------------------------------------------------------------


def test_resolve_single_elimination(client: TestClient):
    response = client.post(
        "/api/brackets/resolve",
        json={"phase": {"phaseType": "SingleElimination", "sortOrder": 1}, "unit_count": 5},
    )

    assert response.status_code == 200
    body = response.json()
    assert (body["bracket_size"], body["bye_count"], body["round_count"], body["total_encounters"]) == (8, 3, 3, 7)


def test_resolve_round_robin_pools(client: TestClient):
    response = client.post(
        "/api/brackets/resolve",
        json={"phase": {"phaseType": "RoundRobin", "poolCount": 2}, "unit_count": 10},
    )

    body = response.json()
    assert body["pool_sizes"] == [5, 5]
    assert body["matches_per_pool"] == [10, 10]
    assert body["total_encounters"] == 20


def test_resolve_with_unit_ids(client: TestClient):
    response = client.post(
        "/api/brackets/resolve",
        json={"phase": {"phaseType": "SingleElimination"}, "unit_ids": [11, 12, 13, 14]},
    )

    first_round = [e for e in response.json()["skeleton"] if e["round_number"] == 1]
    assert [(e["unit1_id"], e["unit2_id"]) for e in first_round] == [(11, 14), (12, 13)]


def test_resolve_flexible_generator(client: TestClient):
    response = client.post(
        "/api/brackets/resolve",
        json={"generate_bracket": {"type": "DoubleElimination"}, "unit_count": 8},
    )
    assert response.json()["total_encounters"] == 15


def test_resolve_too_few_units(client: TestClient):
    response = client.post("/api/brackets/resolve", json={"phase": {"phaseType": "Swiss"}, "unit_count": 1})
    assert response.status_code == 400


def test_resolve_invalid_phase(client: TestClient):
    response = client.post(
        "/api/brackets/resolve", json={"phase": {"phaseType": "Pools", "poolCount": 0}, "unit_count": 8}
    )
    assert response.status_code == 400
    assert response.json()["detail"]["violations"][0]["code"] == "POOL_COUNT_INVALID"
