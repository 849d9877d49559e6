import pytest

from gitvis import utils


class TestUtils:

    def test_debug_doesnt_overwrite_local_vars(self) -> None:
        foo = {"foo": 1}
        try:
            utils.debug_mode = True
            utils.debug("")
        finally:
            utils.debug_mode = False
        assert foo["foo"] == 1  # and not string "1"

    def test_fmt(self) -> None:
        input_string = '<red> red <yellow>yellow <b>yellow_bold</b> `yellow_underlined` yellow <green>green </green> default' \
                       ' <dim> dimmed </dim></yellow> <green>green `green_underlined`</green> default</red>'
        expected_ansi_string = '\033[91m red \033[33myellow \033[1myellow_bold\033[22m \033[4myellow_underlined\033[24m yellow ' \
                               '\033[32mgreen \033[0m default \033[2m dimmed \033[22m\033[0m \033[32mgreen ' \
                               '\033[4mgreen_underlined\033[24m\033[0m default\033[0m'

        ascii_only = utils.ascii_only
        try:
            utils.ascii_only = False
            assert utils.fmt(input_string) == expected_ansi_string
            assert utils.get_vertical_bar() == "│"
        finally:
            utils.ascii_only = ascii_only

    def test_fmt_ascii_only(self) -> None:
        ascii_only = utils.ascii_only
        try:
            utils.ascii_only = True
            assert utils.fmt('<b>bold</b> `underlined` <dim>dimmed</dim>') == 'bold underlined dimmed'
            assert utils.get_vertical_bar() == "|"
        finally:
            utils.ascii_only = ascii_only

    def test_redact_tokens(self) -> None:
        assert utils.redact_tokens('Authorization: Bearer ghp_abc123 and github_pat_XYZ_789') == \
            'Authorization: Bearer <REDACTED> and <REDACTED>'

    def test_warn_is_displayed_once(self, capsys: pytest.CaptureFixture) -> None:  # type: ignore[type-arg]
        utils.displayed_warnings = set()
        ascii_only = utils.ascii_only
        try:
            utils.ascii_only = True
            utils.warn("something is off")
            utils.warn("something is off")
        finally:
            utils.ascii_only = ascii_only

        assert capsys.readouterr().err == "Warn: something is off\n"

    def test_find_or_none(self) -> None:
        assert utils.find_or_none(lambda x: x > 1, [1, 2, 3]) == 2
        assert utils.find_or_none(lambda x: x > 3, [1, 2, 3]) is None
