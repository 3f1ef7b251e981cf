import unittest

from hamcrest import assert_that, calling, is_, raises

from arios.protocol.updates import UpdateFormatError, decode_update, encode_update, split_update
from arios.services import ServiceKind


class EncodeUpdateTest(unittest.TestCase):
    def test_toggle(self):
        assert_that(encode_update("toggle", "true"), is_(b"TOGGLE=true\n"))

    def test_value_may_contain_separator(self):
        assert_that(encode_update("textfield", "a=b"), is_(b"TEXTFIELD=a=b\n"))

    def test_utf8(self):
        assert_that(encode_update("textfield", "café"), is_("TEXTFIELD=café\n".encode('utf-8')))

    def test_invalid_key(self):
        assert_that(calling(encode_update).with_args("", "x"), raises(UpdateFormatError))
        assert_that(calling(encode_update).with_args("a=b", "x"), raises(UpdateFormatError))

    def test_line_break(self):
        assert_that(calling(encode_update).with_args("textfield", "two\nlines"), raises(UpdateFormatError))
        assert_that(calling(encode_update).with_args("textfield", "cr\r"), raises(UpdateFormatError))


class DecodeUpdateTest(unittest.TestCase):
    def test_split_first_separator(self):
        assert_that(split_update(b"TEXTFIELD=a=b\r\n"), is_(("TEXTFIELD", "a=b")))

    def test_split_malformed(self):
        assert_that(calling(split_update).with_args("TOGGLE"), raises(UpdateFormatError))
        assert_that(calling(split_update).with_args("=true"), raises(UpdateFormatError))
        assert_that(calling(split_update).with_args(b"\xff=1"), raises(UpdateFormatError))

    def test_decode(self):
        assert_that(decode_update(b"TOGGLE=true\n"), is_((ServiceKind.TOGGLE, "true")))
        assert_that(decode_update("COLORPICKER=00FF00"), is_((ServiceKind.COLORPICKER, "00FF00")))
        assert_that(decode_update("TEXTFIELD="), is_((ServiceKind.TEXTFIELD, "")))

    def test_unknown_kind(self):
        assert_that(calling(decode_update).with_args("toggle=true"), raises(UpdateFormatError, "no service kind"))
        assert_that(calling(decode_update).with_args("SLIDER=5"), raises(UpdateFormatError))

    def test_invalid_value(self):
        assert_that(calling(decode_update).with_args("TOGGLE=on"), raises(UpdateFormatError, "invalid value"))
        assert_that(calling(decode_update).with_args("TEXTFIELD=<b>x</b>"), raises(UpdateFormatError))
        assert_that(calling(decode_update).with_args("COLORPICKER=XYZXYZ"), raises(UpdateFormatError))

    def test_is_value_error(self):
        assert_that(calling(decode_update).with_args("nonsense"), raises(ValueError))
