"""
通知模板测试
"""
from datetime import datetime

from core.notifications.templates import (
    TemplateStore,
    build_variables,
    json_string_escape,
    render_template,
    DEFAULT_TEMPLATES,
)
from db.crud import TemplateCRUD
from db.models import Alert


def make_alert(**fields):
    data = dict(
        id="alert_0123456789abcdef",
        user_id="user_1",
        provider_id="openai",
        type="error_rate",
        severity="high",
        title="High Error Rate Detected",
        message="Error rate of 12.00% detected",
        metadata_={"error_rate": 12.0},
        created_at=datetime(2026, 10, 19, 8, 30, 0),
    )
    data.update(fields)
    return Alert(**data)


class TestRenderTemplate:
    def test_substitution(self):
        assert render_template("{{a}} and {{b}}", {"a": "x", "b": "y"}) == "x and y"

    def test_unknown_placeholder_kept(self):
        assert render_template("{{a}} {{missing}}", {"a": 1}) == "1 {{missing}}"

    def test_whitespace_inside_braces(self):
        assert render_template("{{ a }}", {"a": "x"}) == "x"

    def test_dict_rendered_as_json(self):
        assert render_template("{{m}}", {"m": {"k": 1}}) == '{"k": 1}'

    def test_none_rendered_empty(self):
        assert render_template("[{{p}}]", {"p": None}) == "[]"

    def test_json_escape(self):
        """替换值中的引号和换行在 JSON 模板中必须被转义"""
        rendered = render_template('{"m": "{{m}}"}', {"m": 'say "hi"\n'}, escape=json_string_escape)
        assert rendered == '{"m": "say \\"hi\\"\\n"}'

    def test_json_escape_keeps_structured_values(self):
        """webhook 模式下 dict / list 原样输出 JSON，字符串仍然转义"""
        rendered = render_template(
            '{"m": "{{m}}", "meta": {{meta}}, "tags": {{tags}}}',
            {"m": 'a "b"', "meta": {"rule_id": "rule_1"}, "tags": ["x"]},
            escape=json_string_escape,
        )
        assert rendered == '{"m": "a \\"b\\"", "meta": {"rule_id": "rule_1"}, "tags": ["x"]}'


class TestBuildVariables:
    def test_variables(self):
        variables = build_variables(make_alert(), "https://dash.example.com/")

        assert variables["alertId"] == "alert_0123456789abcdef"
        assert variables["alertTitle"] == "High Error Rate Detected"
        assert variables["severity"] == "high"
        assert variables["timestamp"] == "2026-10-19T08:30:00Z"
        assert variables["formattedTime"] == "2026-10-19 08:30:00 UTC"
        assert variables["dashboardUrl"] == "https://dash.example.com"
        assert variables["alertUrl"] == "https://dash.example.com/dashboard/alerts/alert_0123456789abcdef"
        assert variables["metadata"] == {"error_rate": 12.0}

    def test_missing_provider(self):
        variables = build_variables(make_alert(provider_id=None), "http://localhost:3000")
        assert variables["providerId"] == ""


class TestTemplateStore:
    def test_default_without_db(self):
        assert TemplateStore().get_template("slack", "error_rate", "high") is DEFAULT_TEMPLATES["slack"]

    def test_fallback_for_unknown_type(self):
        assert TemplateStore().get_template("in_app", "error_rate", "high").body == "{{alertMessage}}"

    def test_override_from_db(self, db_session):
        TemplateCRUD.create(
            db_session, "custom", "email", "error_rate", "critical",
            body="Custom {{alertTitle}}", subject="!! {{alertTitle}}",
        )
        store = TemplateStore(db_session)

        template = store.get_template("email", "error_rate", "critical")
        assert template.body == "Custom {{alertTitle}}"
        assert template.subject == "!! {{alertTitle}}"

        assert store.get_template("email", "error_rate", "high") is DEFAULT_TEMPLATES["email"]
