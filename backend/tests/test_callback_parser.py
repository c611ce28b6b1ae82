from app.services.callback_parser import decode_text_body, message_signals_success, normalize_callback
from app.services.moolre import build_external_ref, strip_retry_suffix


def test_retry_suffix_is_stripped_back_to_order_number():
    assert strip_retry_suffix("ORD-5-R1700000000000") == "ORD-5"


def test_strip_only_touches_a_trailing_suffix():
    assert strip_retry_suffix("ORD-R12-5") == "ORD-R12-5"
    assert strip_retry_suffix("ORD-5") == "ORD-5"


def test_external_ref_round_trips_through_strip():
    ref = build_external_ref("ORD-1770330034217-441", now_ms=1770330034999)
    assert ref == "ORD-1770330034217-441-R1770330034999"
    assert strip_retry_suffix(ref) == "ORD-1770330034217-441"


def test_nested_data_payload_resolves_order_and_transaction():
    cb = normalize_callback({"status": 1, "data": {"txtstatus": 1, "externalref": "ORD-9-R123", "transactionid": "T1"}})
    assert cb.order_number == "ORD-9"
    assert cb.gateway_reference == "T1"
    assert cb.is_success is True


def test_nested_data_wins_over_top_level():
    cb = normalize_callback({
        "externalref": "TOP-1-R1",
        "reference": "TOP-REF",
        "data": {"externalref": "NESTED-1-R2", "thirdpartyref": "TP-9"},
    })
    assert cb.order_number == "NESTED-1"
    assert cb.gateway_reference == "TP-9"


def test_top_level_fields_are_used_when_data_missing():
    cb = normalize_callback({"orderRef": "ORD-3", "reference": "R-3", "amount": "12.50", "message": "Completed"})
    assert cb.order_number == "ORD-3"
    assert cb.gateway_reference == "R-3"
    assert cb.amount == 12.5
    assert cb.is_success is True


def test_metadata_fallback_for_order_number():
    cb = normalize_callback({"data": {"metadata": {"original_order_number": "ORD-77"}}})
    assert cb.order_number == "ORD-77"
    assert cb.gateway_reference == "callback"


def test_form_encoded_data_string_is_decoded():
    cb = normalize_callback({"status": "1", "data": '{"externalref": "ORD-4-R99", "transactionid": "55"}'})
    assert cb.order_number == "ORD-4"
    assert cb.gateway_reference == "55"
    assert cb.is_success is True


def test_declined_message_is_not_success():
    cb = normalize_callback({"message": "Payment Declined", "data": {"externalref": "ORD-2-R5"}})
    assert cb.is_success is False


def test_status_codes_accept_string_ones():
    assert normalize_callback({"status": "1"}).is_success is True
    assert normalize_callback({"data": {"txtstatus": "1"}}).is_success is True
    assert normalize_callback({"status": 0, "data": {"txtstatus": 0}}).is_success is False


def test_success_keywords():
    assert message_signals_success("Transaction Successful")
    assert message_signals_success("PAID")
    assert message_signals_success("completed")
    assert not message_signals_success("Transaction unsuccessful")
    assert not message_signals_success("Payment not completed")
    assert not message_signals_success("")


def test_non_dict_body_degrades_to_empty():
    cb = normalize_callback(["not", "a", "dict"])
    assert cb.order_number is None
    assert cb.is_success is False


def test_unparseable_amount_is_ignored():
    assert normalize_callback({"data": {"amount": "two cedis"}}).amount is None


def test_decode_text_body_json_then_query_string():
    assert decode_text_body('{"externalref": "ORD-1"}') == {"externalref": "ORD-1"}
    assert decode_text_body("externalref=ORD-1&status=1") == {"externalref": "ORD-1", "status": "1"}
    assert decode_text_body("") == {}
    assert decode_text_body("[1, 2]") == {}
