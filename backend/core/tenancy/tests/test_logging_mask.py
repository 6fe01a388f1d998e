import logging

from django.test import SimpleTestCase

from tenancy.logging import MaskPANAadhaarFilter, mask_pan_aadhaar


class MaskPANAadhaarTests(SimpleTestCase):
    def test_masks_pan_and_aadhaar_values(self):
        msg = "pan=ABCDE1234F aadhaar=1234 5678 9012 raw=123456789012"
        masked = mask_pan_aadhaar(msg)
        self.assertNotIn("ABCDE1234F", masked)
        self.assertNotIn("1234 5678 9012", masked)
        self.assertNotIn("123456789012", masked)
        self.assertIn("***PAN***", masked)
        self.assertEqual(masked.count("***AADHAAR***"), 2)

    def test_leaves_policy_numbers_alone(self):
        msg = "policy MOT-2024-000123 premium 15000.00"
        self.assertEqual(mask_pan_aadhaar(msg), msg)

    def test_logging_filter_masks_message_and_extra(self):
        record = logging.LogRecord(
            name="test",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="customer pan=%s",
            args=("ABCDE1234F",),
            exc_info=None,
        )
        record.customer_ref = "ZZZZZ9999Z"
        MaskPANAadhaarFilter().filter(record)
        self.assertIn("***PAN***", record.msg)
        self.assertNotIn("ABCDE1234F", record.msg)
        self.assertEqual(record.args, ())
        self.assertEqual(record.customer_ref, "***PAN***")
