"""Tests for the ANSI SGR decoder."""

from panelwatch.utils.ansi import (
    DEFAULT_STYLE,
    AnsiColor,
    AnsiTextDecoder,
    StyledRun,
    TextStyle,
    decode,
    strip,
)


class TestDecode:
    def test_plain_text_is_one_default_run(self):
        assert decode("hello world") == [StyledRun("hello world", DEFAULT_STYLE)]

    def test_empty_input(self):
        assert decode("") == []

    def test_color_then_reset(self):
        runs = decode("\x1b[31mERROR\x1b[0m ok")
        assert runs == [
            StyledRun("ERROR", TextStyle(color=AnsiColor.RED)),
            StyledRun(" ok", DEFAULT_STYLE),
        ]

    def test_bright_colors(self):
        runs = decode("\x1b[92mup\x1b[97mwhite")
        assert runs[0].style.color is AnsiColor.BRIGHT_GREEN
        assert runs[1].style.color is AnsiColor.BRIGHT_WHITE

    def test_bold_and_color_combined(self):
        runs = decode("\x1b[1;33mWARN")
        assert runs == [StyledRun("WARN", TextStyle(color=AnsiColor.YELLOW, bold=True))]

    def test_bold_off_keeps_color(self):
        runs = decode("\x1b[1;34ma\x1b[22mb")
        assert runs[1].style == TextStyle(color=AnsiColor.BLUE, bold=False)

    def test_default_foreground_keeps_bold(self):
        runs = decode("\x1b[1;35ma\x1b[39mb")
        assert runs[1].style == TextStyle(color=None, bold=True)

    def test_empty_params_reset(self):
        runs = decode("\x1b[31mred\x1b[mplain")
        assert runs[1].style.is_default

    def test_unknown_codes_ignored(self):
        # underline and background colour are not rendered
        runs = decode("\x1b[32mgreen\x1b[4;41mstill")
        assert runs[1].style == TextStyle(color=AnsiColor.GREEN)

    def test_adjacent_codes_produce_no_empty_runs(self):
        runs = decode("\x1b[31m\x1b[1mX")
        assert len(runs) == 1
        assert runs[0] == StyledRun("X", TextStyle(color=AnsiColor.RED, bold=True))

    def test_cut_sequence_is_literal(self):
        runs = decode("line\x1b[3")
        assert "".join(r.text for r in runs) == "line\x1b[3"

    def test_non_sgr_escape_is_literal(self):
        assert strip("a\x1b[2Kb") == "a\x1b[2Kb"

    def test_text_is_preserved_in_order(self):
        raw = "\x1b[36m[12:00:01]\x1b[0m \x1b[1mServer\x1b[0m started"
        assert "".join(r.text for r in decode(raw)) == strip(raw)

    def test_256_color_index_is_not_a_basic_code(self):
        assert decode("\x1b[38;5;31mX") == [StyledRun("X", DEFAULT_STYLE)]

    def test_truecolor_arguments_are_skipped(self):
        runs = decode("\x1b[1;38;2;1;31;92;32mX")
        assert runs == [StyledRun("X", TextStyle(color=AnsiColor.GREEN, bold=True))]

    def test_background_256_keeps_foreground(self):
        runs = decode("\x1b[31;48;5;34mX")
        assert runs == [StyledRun("X", TextStyle(color=AnsiColor.RED))]


class TestStrip:
    def test_strip_removes_sgr(self):
        assert strip("\x1b[31;1mboom\x1b[0m!") == "boom!"

    def test_decoder_object_delegates(self):
        decoder = AnsiTextDecoder()
        assert decoder.strip("\x1b[32mok\x1b[0m") == "ok"
        assert decoder.decode("x") == [StyledRun("x")]
