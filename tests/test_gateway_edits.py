"""Tests for applyEdits batching and positional result reconciliation."""

import json

import pytest
from pydantic import ValidationError

from conftest import WILDFIRE_LAYER
from geoservices import (
    ApplyEdits,
    Feature,
    Point,
    Polygon,
    ProtocolError,
    Query,
    TransportError,
)


def _incident(description, x=-13046000.0, y=4036000.0, **attributes):
    return Feature(attributes={"description": description, **attributes}, geometry=Point(x=x, y=y))


class TestApplyEditsModel:
    def test_update_requires_object_id(self):
        with pytest.raises(ValidationError, match="objectid"):
            ApplyEdits(endpoint=WILDFIRE_LAYER, updates=[_incident("no id")])

    def test_object_id_field_is_case_insensitive(self):
        edits = ApplyEdits(endpoint=WILDFIRE_LAYER, updates=[_incident("ok", OBJECTID=4)])
        assert len(edits.updates) == 1

    def test_custom_object_id_field(self):
        edits = ApplyEdits(endpoint=WILDFIRE_LAYER, object_id_field="fid", updates=[_incident("ok", fid=4)])
        assert edits.geometry_type.value == "esriGeometryPoint"

    def test_mixed_geometry_variants_rejected(self):
        square = Feature(attributes={}, geometry=Polygon(rings=[[[0, 0], [0, 1], [1, 1], [0, 0]]]))
        with pytest.raises(ValidationError, match="one geometry variant"):
            ApplyEdits(endpoint=WILDFIRE_LAYER, adds=[_incident("a"), square])

    def test_empty_batch(self):
        edits = ApplyEdits(endpoint=WILDFIRE_LAYER)
        assert edits.is_empty
        assert edits.geometry_type is None


class TestApplyEdits:
    def test_add_update_delete_round_trip(self, gateway, server):
        server.respond({
            "addResults": [{"objectId": 101, "globalId": "{A1}", "success": True}],
            "updateResults": [{"objectId": 7, "success": True}],
            "deleteResults": [{"objectId": 9, "success": True}],
        })
        edits = ApplyEdits(
            endpoint=WILDFIRE_LAYER,
            adds=[_incident("New fire")],
            updates=[_incident("Contained", objectid=7)],
            deletes=[9],
            rollback_on_failure=True,
        )

        response = gateway.apply_edits(edits)

        request = server.last
        assert request.method == "POST"
        assert str(request.url).endswith(WILDFIRE_LAYER + "/applyEdits")
        params = server.params(request)
        assert params["deletes"] == "9"
        assert params["rollbackOnFailure"] == "true"
        assert json.loads(params["adds"])[0]["attributes"] == {"description": "New fire"}
        assert json.loads(params["updates"])[0]["attributes"]["objectid"] == 7

        assert response.adds[0].objectId == 101
        assert response.adds[0].globalId == "{A1}"
        assert response.updates[0].success
        assert response.deletes[0].objectId == 9
        assert response.failures == []

    def test_edits_are_never_sent_as_get(self, gateway, server):
        server.respond({"addResults": [{"objectId": 1, "success": True}]})
        big = _incident("x" * 5000)
        gateway.apply_edits(ApplyEdits(endpoint=WILDFIRE_LAYER, adds=[big]))
        assert server.last.method == "POST"

    def test_results_align_with_inputs_by_position(self, gateway, server):
        server.respond({
            "addResults": [
                {"objectId": 11, "success": True},
                {"objectId": None, "success": False,
                 "error": {"code": 1000, "description": "Invalid geometry"}},
                {"objectId": 13, "success": True},
            ]
        })
        adds = [_incident("a"), _incident("b"), _incident("c")]

        response = gateway.apply_edits(ApplyEdits(endpoint=WILDFIRE_LAYER, adds=adds))

        assert [r.success for r in response.adds] == [True, False, True]
        assert response.adds[1].error.description == "Invalid geometry"
        assert len(response.failures) == 1

    def test_result_count_mismatch_raises(self, gateway, server):
        server.respond({"addResults": [{"objectId": 11, "success": True}]})
        edits = ApplyEdits(endpoint=WILDFIRE_LAYER, adds=[_incident("a"), _incident("b")])

        with pytest.raises(ProtocolError) as exc_info:
            gateway.apply_edits(edits)

        assert exc_info.value.details == {"operation": "adds", "sent": 2, "received": 1}

    def test_missing_result_list_counts_as_mismatch(self, gateway, server):
        server.respond({"addResults": [], "deleteResults": []})
        with pytest.raises(ProtocolError):
            gateway.apply_edits(ApplyEdits(endpoint=WILDFIRE_LAYER, deletes=[1, 2]))

    def test_empty_body_for_non_empty_batch(self, gateway, server):
        server.respond("")
        with pytest.raises(ProtocolError):
            gateway.apply_edits(ApplyEdits(endpoint=WILDFIRE_LAYER, deletes=[1]))

    def test_empty_batch_with_empty_body(self, gateway, server):
        server.respond("")
        response = gateway.apply_edits(ApplyEdits(endpoint=WILDFIRE_LAYER))
        assert response.adds == [] and response.updates == [] and response.deletes == []

    def test_service_error_skips_reconciliation(self, gateway, server, service_error_body):
        server.respond(service_error_body)
        response = gateway.apply_edits(ApplyEdits(endpoint=WILDFIRE_LAYER, deletes=[1]))
        assert response.error.code == 400

    def test_transport_failure(self, gateway, server):
        server.respond("Bad Gateway", status_code=502)
        with pytest.raises(TransportError):
            gateway.apply_edits(ApplyEdits(endpoint=WILDFIRE_LAYER, deletes=[1]))


class TestEditLifecycle:
    def test_add_then_update_then_delete_same_identifier(self, gateway, server):
        server.respond({"addResults": [{"objectId": 77, "success": True}],
                        "updateResults": [], "deleteResults": []})
        server.respond({"addResults": [], "updateResults": [{"objectId": 77, "success": True}],
                        "deleteResults": []})
        server.respond({"addResults": [], "updateResults": [],
                        "deleteResults": [{"objectId": 77, "success": True}]})

        added = gateway.apply_edits(ApplyEdits(endpoint=WILDFIRE_LAYER, adds=[_incident("Reported")]))
        new_id = added.adds[0].objectId
        assert added.adds[0].success

        updated = gateway.apply_edits(
            ApplyEdits(endpoint=WILDFIRE_LAYER, updates=[_incident("Contained", objectid=new_id)])
        )
        assert updated.updates[0].success and updated.updates[0].objectId == new_id
        assert json.loads(server.params(server.last)["updates"])[0]["attributes"]["objectid"] == new_id

        deleted = gateway.apply_edits(ApplyEdits(endpoint=WILDFIRE_LAYER, deletes=[new_id]))
        assert deleted.deletes[0].success and deleted.deletes[0].objectId == new_id
        assert server.params(server.last)["deletes"] == "77"


class TestEditThenQuery:
    def test_added_feature_is_queryable(self, gateway, server):
        server.respond({"addResults": [{"objectId": 55, "success": True}]})
        server.respond({"features": [
            {"attributes": {"objectid": 55, "description": "Spot fire"},
             "geometry": {"x": -13046000.0, "y": 4036000.0}}
        ]})

        added = gateway.apply_edits(ApplyEdits(endpoint=WILDFIRE_LAYER, adds=[_incident("Spot fire")]))
        new_id = added.adds[0].objectId
        found = gateway.query(Query(endpoint=WILDFIRE_LAYER, object_ids=[new_id]), Point)

        assert server.params(server.last)["objectIds"] == "55"
        assert found.features[0].get_attribute("description") == "Spot fire"
        assert found.features[0].geometry == Point(x=-13046000.0, y=4036000.0)
