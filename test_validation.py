# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Input validation — pure functions, no fixtures needed."""
import pytest

from casebot.core.errors import ValidationError
from casebot.services.validation import (
    ParsedCommand, normalize_mentions, parse_command, parse_mention, sanitize_input,
    validate_command_text, validate_identity_token, validate_origin_token, validate_title,
)


# ═══════════════════════════════════════════════════════════════════════════
# TITLES
# ═══════════════════════════════════════════════════════════════════════════
class TestValidateTitle:
    def test_trims_whitespace(self):
        assert validate_title("  API issues  ") == "API issues"

    def test_script_is_stripped_and_title_preserved(self):
        out = validate_title("<script>x</script>Title")
        assert "Title" in out
        assert "<script" not in out.lower()
        assert "<" not in out

    def test_html_entities_escaped(self):
        assert validate_title('Tom & "Jerry"') == "Tom &amp; &quot;Jerry&quot;"

    def test_event_handler_removed(self):
        out = validate_title("<b onclick=alert(1)>hi</b>")
        assert "onclick" not in out

    def test_javascript_scheme_removed(self):
        assert "javascript:" not in validate_title("javascript: alert(1)").lower()

    @pytest.mark.parametrize("title", ["", "   ", None])
    def test_empty_rejected(self, title):
        with pytest.raises(ValidationError, match="Title cannot be empty"):
            validate_title(title)

    @pytest.mark.parametrize("title", ["<script>x</script>", "  <img src=x>  "])
    def test_markup_only_title_rejected_as_empty(self, title):
        with pytest.raises(ValidationError, match="Title cannot be empty"):
            validate_title(title)

    def test_too_long_rejected(self):
        with pytest.raises(ValidationError, match="less than 200"):
            validate_title("a" * 201)

    def test_exactly_200_accepted(self):
        assert len(validate_title("a" * 200)) == 200

    @pytest.mark.parametrize("title", ["../etc/passwd", "http://evil", "a\\\\b"])
    def test_path_traversal_rejected(self, title):
        with pytest.raises(ValidationError, match="invalid characters"):
            validate_title(title)


# ═══════════════════════════════════════════════════════════════════════════
# COMMAND TEXT + PARSING
# ═══════════════════════════════════════════════════════════════════════════
class TestCommandText:
    @pytest.mark.parametrize("text", ["a;b", "a && b", "a | b", "`id`", "$(x)", "{x}", "[x]", "<x>", "../x", "a\x00b"])
    def test_metacharacters_rejected(self, text):
        with pytest.raises(ValidationError, match="Command contains invalid characters"):
            validate_command_text(text)

    def test_too_long_rejected(self):
        with pytest.raises(ValidationError, match="Command text too long"):
            validate_command_text("x" * 501)

    def test_plain_text_passes(self):
        assert validate_command_text("  create API issues ") == "create API issues"


class TestParseCommand:
    def test_verb_and_remainder(self):
        assert parse_command("create  API   issues") == ParsedCommand("create", "API   issues")

    def test_verb_lowercased(self):
        assert parse_command("STATUS").verb == "status"

    def test_empty_text_gives_empty_verb(self):
        assert parse_command("") == ParsedCommand("", "")
        assert parse_command("   ") == ParsedCommand("", "")

    def test_rejected_text_fails_before_verb_extraction(self):
        with pytest.raises(ValidationError):
            parse_command("status; rm -rf /")

    def test_escaped_mention_is_normalized(self):
        assert parse_command("transfer <@UBOB000002|bob>") == ParsedCommand("transfer", "@UBOB000002")

    def test_other_angle_brackets_still_rejected(self):
        with pytest.raises(ValidationError):
            parse_command("create <b>bold</b>")


class TestNormalizeMentions:
    def test_plain_and_labelled(self):
        assert normalize_mentions("<@UABCDEFGH1> and <@UABCDEFGH2|carol>") == "@UABCDEFGH1 and @UABCDEFGH2"

    def test_non_user_tokens_untouched(self):
        assert normalize_mentions("<#C12345678>") == "<#C12345678>"


# ═══════════════════════════════════════════════════════════════════════════
# TOKENS + MENTIONS
# ═══════════════════════════════════════════════════════════════════════════
class TestTokens:
    def test_identity_ok(self):
        assert validate_identity_token("U12345678") == "U12345678"

    @pytest.mark.parametrize("token", ["", "u12345678", "U1234", "W12345678", "U123_T456", "C12345678"])
    def test_identity_bad(self, token):
        with pytest.raises(ValidationError, match="Invalid Slack user ID format"):
            validate_identity_token(token)

    def test_origin_ok(self):
        assert validate_origin_token("C12345678") == "C12345678"

    @pytest.mark.parametrize("token", ["", "D12345678", "C1234", "c12345678"])
    def test_origin_bad(self, token):
        with pytest.raises(ValidationError, match="Invalid Slack channel ID format"):
            validate_origin_token(token)


class TestParseMention:
    @pytest.mark.parametrize("target", ["<@UBOB000002>", "<@UBOB000002|bob>", "@UBOB000002", "  @UBOB000002 "])
    def test_accepted_forms(self, target):
        assert parse_mention(target) == "UBOB000002"

    @pytest.mark.parametrize("target", ["", "bob", "@bob", "UBOB000002", "<@UBOB000002> extra"])
    def test_malformed(self, target):
        with pytest.raises(ValidationError, match="Please mention a user"):
            parse_mention(target)

    def test_wellformed_shape_but_bad_id(self):
        with pytest.raises(ValidationError, match="Invalid Slack user ID format"):
            parse_mention("@U1")


class TestSanitizeInput:
    def test_escapes_quote_and_apostrophe(self):
        assert sanitize_input("it's \"x\"") == "it&#39;s &quot;x&quot;"

    def test_strips_iframe(self):
        assert sanitize_input("<iframe src=x></iframe>ok") == "ok"
