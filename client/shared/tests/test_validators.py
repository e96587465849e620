import pytest

from shared.validators import normalize_server_url, parse_string_list


class TestParseStringList:
    def test_json_array_string(self):
        result = parse_string_list('["websocket","polling"]')
        assert result == ["websocket", "polling"]

    def test_comma_separated_string(self):
        result = parse_string_list("websocket,polling")
        assert result == ["websocket", "polling"]

    def test_comma_separated_with_whitespace(self):
        result = parse_string_list("websocket , polling")
        assert result == ["websocket", "polling"]

    def test_passthrough_list(self):
        transports = ["websocket"]
        result = parse_string_list(transports)
        assert result == transports

    def test_empty_string_raises(self):
        with pytest.raises(ValueError, match="must not be empty"):
            parse_string_list("")

    def test_invalid_json_raises(self):
        with pytest.raises(ValueError, match="Invalid JSON array"):
            parse_string_list("[not valid json")

    def test_json_mixed_types_array_raises(self):
        with pytest.raises(ValueError, match="must be an array of strings"):
            parse_string_list('["websocket", 123]')

    def test_empty_list_raises(self):
        with pytest.raises(ValueError, match="must not be empty"):
            parse_string_list([])

    def test_comma_only_raises(self):
        with pytest.raises(ValueError, match="must not be empty"):
            parse_string_list(",")


class TestNormalizeServerUrl:
    def test_strips_trailing_slash_and_whitespace(self):
        assert normalize_server_url(" https://quiz.example.com/ ") == "https://quiz.example.com"

    def test_keeps_port(self):
        assert normalize_server_url("http://localhost:3001") == "http://localhost:3001"

    @pytest.mark.parametrize("value", ["quiz.example.com", "ftp://quiz.example.com", "http://", ""])
    def test_rejects_non_http_urls(self, value):
        with pytest.raises(ValueError, match="absolute http"):
            normalize_server_url(value)
