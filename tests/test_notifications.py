import pytest

from app.core import config
from app.models import tables
from app.services import notifications
from app.services.notifications import NotificationDispatcher, format_currency
from conftest import FakeMailer

pytestmark = pytest.mark.unit


def submission(form_type="contact_inquiry", **overrides):
    data = {
        "name": "Jan Kowalski",
        "email": "jan@example.com",
        "phone": "600100200",
        "payload": {"formType": form_type, "message": "Dzień dobry"},
    }
    data.update(overrides)
    return tables.FormSubmission(form_type=form_type, **data)


class TestFormatting:
    @pytest.mark.parametrize("amount, expected", [
        ("450000", "450 000,00 PLN"),
        ("2150.5", "2 150,50 PLN"),
        (None, "0 PLN"),
        ("brak", "0 PLN"),
    ])
    def test_format_currency(self, amount, expected):
        assert format_currency(amount) == expected

    def test_admin_email_escapes_user_input(self):
        subject, html = notifications.render_admin_email(
            submission(name="<script>alert(1)</script>", payload={"formType": "contact_inquiry", "message": "a & b"})
        )

        assert "<script>" not in html
        assert "&lt;script&gt;" in html
        assert "a &amp; b" in html
        assert subject.startswith("New contact message")

    def test_loan_confirmation_lists_amounts(self):
        loan = submission(
            "loan_inquiry",
            payload={"formType": "loan_inquiry", "propertyPrice": "500000", "loanTerm": "360"},
        )

        subject, html = notifications.render_loan_confirmation(loan)

        assert "500 000,00 PLN" in html
        assert "360" in html
        assert "Jan Kowalski" in html


class TestDispatcher:
    def test_loan_inquiry_notifies_admin_and_submitter(self):
        mailer = FakeMailer()

        result = NotificationDispatcher(mailer).dispatch(
            submission("loan_inquiry", payload={"formType": "loan_inquiry", "propertyPrice": "1"})
        )

        assert result.success is True
        assert [d.recipient for d in result.deliveries] == ["admin", "user"]
        assert mailer.recipients == [config.ADMIN_EMAIL, "jan@example.com"]
        assert all(d.message_id for d in result.deliveries)

    def test_other_forms_go_to_contact_inbox(self):
        mailer = FakeMailer()

        result = NotificationDispatcher(mailer).dispatch(submission("partner_inquiry"))

        assert result.success is True
        assert mailer.recipients == [config.CONTACT_EMAIL]

    def test_transport_failure_is_reported_not_raised(self):
        mailer = FakeMailer()
        mailer.fail_all = True

        result = NotificationDispatcher(mailer).dispatch(submission())

        assert result.success is False
        assert "SMTP refused" in result.error

    def test_missing_admin_address(self, monkeypatch):
        monkeypatch.setattr(config, "ADMIN_EMAIL", None)
        mailer = FakeMailer()

        result = NotificationDispatcher(mailer).dispatch(
            submission("loan_inquiry", payload={"formType": "loan_inquiry", "propertyPrice": "1"})
        )

        assert result.success is False
        assert result.error == "admin: recipient address not configured"
        assert mailer.recipients == ["jan@example.com"]

    def test_unexpected_mailer_error_is_contained(self):
        class BrokenMailer:
            def send(self, to, subject, html):
                raise RuntimeError("connection reset")

        result = NotificationDispatcher(BrokenMailer()).dispatch(submission())

        assert result.success is False
        assert "connection reset" in result.error

    def test_empty_result_is_not_success(self):
        assert notifications.NotificationResult().success is False
