from datetime import date, datetime

import pytest

from boardinghouse.errors import NotFoundError, ValidationError
from boardinghouse.services.occupancy import LeaseTerms, assign_tenant
from boardinghouse.services.reports import submit_report, update_report_status


@pytest.fixture
def housed_tenant(make_room, make_tenant, sink):
    room, tenant = make_room(security_deposit="0"), make_tenant()
    assign_tenant(room.id, tenant.id, LeaseTerms(start_date=date(2024, 1, 1)), now=datetime(2024, 1, 1))
    sink.clear()
    return tenant


class TestSubmitReport:
    def test_tenant_and_staff_are_notified(self, housed_tenant, admin, staff, sink):
        report = submit_report(housed_tenant.id, "maintenance", "Leaky faucet", "Bathroom sink drips")

        assert report.status == "pending"
        assert report.room_id == housed_tenant.room_id
        assert sink.titles == ["Report Submitted Successfully", "New Report Submitted", "New Report Submitted"]
        assert {n["recipient"].id for n in sink.sent[1:]} == {admin.id, staff.id}
        assert sink.sent[1]["metadata"]["tenant_id"] == housed_tenant.id

    def test_unknown_type(self, housed_tenant):
        with pytest.raises(ValidationError):
            submit_report(housed_tenant.id, "party", "Noise", "Loud music")

    def test_archived_tenant(self, make_tenant):
        tenant = make_tenant(is_archived=True)
        with pytest.raises(NotFoundError):
            submit_report(tenant.id, "complaint", "Noise", "Loud music")


class TestUpdateReportStatus:
    def test_change_notifies_the_tenant(self, housed_tenant, sink):
        report = submit_report(housed_tenant.id, "complaint", "Noise", "Loud music after midnight")
        sink.clear()

        update_report_status(report.id, "resolved")

        assert report.status == "resolved"
        assert sink.titles == ["Report Status Updated"]
        assert sink.sent[0]["message"] == 'Your complaint report "Noise" has been resolved.'
        assert sink.sent[0]["metadata"]["old_status"] == "pending"

    def test_unchanged_status_is_silent(self, housed_tenant, sink):
        report = submit_report(housed_tenant.id, "complaint", "Noise", "Loud music")
        sink.clear()

        update_report_status(report.id, "pending")
        assert sink.sent == []

    def test_invalid_status(self, housed_tenant):
        report = submit_report(housed_tenant.id, "complaint", "Noise", "Loud music")
        with pytest.raises(ValidationError):
            update_report_status(report.id, "closed")
