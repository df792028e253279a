# tests/engine/test_factory.py
"""End-to-end tests for ValidationFactory."""

import asyncio
import hashlib

import pytest

from fieldwright.contracts import (
    ConfigurationError,
    InstanceState,
    NestedValidationError,
    RegistrationError,
    ValidationFailed,
)
from fieldwright.core.cascade import Style
from fieldwright.core.matching import MatchConfig
from fieldwright.core.registry import ObjectRule
from fieldwright.engine import ValidationFactory
from fieldwright.schema import Field, Schema
from fieldwright.stages import (
    Coerce,
    CoerceCase,
    CoerceFromSet,
    CoerceTrim,
    CoerceType,
    CrossValidate,
    DerivedFrom,
    Nested,
    RecursiveValues,
    ValidateLength,
    ValidateRange,
    ValidateRequired,
)


class Product(Schema, strategy="single_pass"):
    name = Field(CoerceTrim(), CoerceCase("title"), ValidateRequired())
    price = Field(CoerceType(float), ValidateRange(minimum=0))
    category = Field(CoerceFromSet(lambda context: context["categories"], threshold=0.7))


CATEGORIES = ["Hardware", "Software", "Services"]


class TestCreate:
    @pytest.mark.asyncio
    async def test_builds_instance(self, factory: ValidationFactory) -> None:
        product = await factory.create(Product, {"name": "  usb hub ", "price": "19.5", "category": "hardwre"}, context={"categories": CATEGORIES})
        assert isinstance(product, Product)
        assert product.to_dict() == {"name": "Usb Hub", "price": 19.5, "category": "Hardware"}

    @pytest.mark.asyncio
    async def test_accepts_options_object(self, factory: ValidationFactory) -> None:
        from fieldwright.core.config import CreateOptions

        options = CreateOptions(context={"categories": CATEGORIES})
        product = await factory.create(Product, {"name": "x", "price": 1, "category": "software"}, options)
        assert product.category == "Software"

    @pytest.mark.asyncio
    async def test_idempotent_on_own_output(self, factory: ValidationFactory) -> None:
        raw = {"name": "cable", "price": "3", "category": "hardware"}
        first = await factory.create(Product, raw, context={"categories": CATEGORIES})
        second = await factory.create(Product, first, context={"categories": CATEGORIES})
        assert second == first

    @pytest.mark.asyncio
    async def test_concurrent_calls_share_nothing(self, factory: ValidationFactory) -> None:
        raws = [{"name": f"item {i}", "price": i, "category": "services"} for i in range(20)]
        products = await asyncio.gather(*(factory.create(Product, raw, context={"categories": CATEGORIES}) for raw in raws))
        assert [product.price for product in products] == [float(i) for i in range(20)]
        assert products[7].name == "Item 7"

    def test_create_sync(self, factory: ValidationFactory) -> None:
        product = factory.create_sync(Product, {"name": "mouse", "price": 5, "category": "hardware"}, context={"categories": CATEGORIES})
        assert product.price == 5.0

    def test_plan_compiled_once(self, factory: ValidationFactory) -> None:
        assert factory.compile(Product) is factory.compile(Product)

    @pytest.mark.asyncio
    async def test_validation_failed_payload(self, factory: ValidationFactory) -> None:
        with pytest.raises(ValidationFailed) as exc_info:
            await factory.create(Product, {"name": " ", "price": "-2", "category": "food"}, context={"categories": CATEGORIES})
        failed = exc_info.value
        assert failed.schema == "Product"
        assert failed.paths == ["name", "price", "category"]
        details = failed.to_dicts()
        assert details[2]["candidates"] == CATEGORIES
        assert "3 error(s)" in str(failed)


class Contact(Schema, strategy="single_pass", matching=MatchConfig()):
    first_name = Field(CoerceTrim())
    last_name = Field(CoerceTrim())


class Strict(Schema, strategy="single_pass"):
    first_name = Field(CoerceTrim())
    email = Field(CoerceTrim(), matching=MatchConfig())


class TestKeyMatching:
    @pytest.mark.asyncio
    async def test_schema_matching_resolves_messy_keys(self, factory: ValidationFactory) -> None:
        contact = await factory.create(Contact, {"First_Name": " Ada ", "LAST NAME": "Lovelace"})
        assert (contact.first_name, contact.last_name) == ("Ada", "Lovelace")

    @pytest.mark.asyncio
    async def test_tied_keys_are_an_error(self, factory: ValidationFactory) -> None:
        with pytest.raises(ValidationFailed) as exc_info:
            await factory.create(Contact, {"First Name": "Ada", "first-name": "Grace", "last_name": "L"})
        assert exc_info.value.paths == ["first_name"]
        assert exc_info.value.errors[0].rule == "copy"

    @pytest.mark.asyncio
    async def test_field_matching_override(self, factory: ValidationFactory) -> None:
        strict = await factory.create(Strict, {"First Name": "Ada", "E-Mail": "ada@example.com"})
        assert strict.first_name is None
        assert strict.email == "ada@example.com"


class DynamicConfig(Schema, strategy="single_pass", matching=MatchConfig(threshold=0.7)):
    config_name = Field(CoerceTrim())
    settings = Field(RecursiveValues(CoerceTrim(), CoerceCase("lower")))


class TestRecursiveNormalization:
    @pytest.mark.asyncio
    async def test_dynamic_settings_normalized(self, factory: ValidationFactory) -> None:
        raw = {
            "Config_Name": "  APP_SETTINGS  ",
            "Settings": {
                "DATABASE": {"HOST": "  LOCALHOST  ", "PORT": "  5432  ", "DB_NAME": "  MY_DATABASE  "},
                "CACHE": {"PROVIDER": "  REDIS  ", "TTL": "  3600  "},
                "FLAGS": {"ENABLE_BETA": "  TRUE  ", "DEBUG_MODE": "  FALSE  "},
            },
        }
        config = await factory.create(DynamicConfig, raw)

        assert config.config_name == "APP_SETTINGS"
        assert config.settings == {
            "DATABASE": {"HOST": "localhost", "PORT": "5432", "DB_NAME": "my_database"},
            "CACHE": {"PROVIDER": "redis", "TTL": "3600"},
            "FLAGS": {"ENABLE_BETA": "true", "DEBUG_MODE": "false"},
        }

    @pytest.mark.asyncio
    async def test_leaf_failure_path_includes_field(self, factory: ValidationFactory) -> None:
        class Limits(Schema, strategy="single_pass"):
            quotas = Field(RecursiveValues(CoerceType(int)))

        with pytest.raises(ValidationFailed) as exc_info:
            await factory.create(Limits, {"quotas": {"api": {"daily": "1,000", "hourly": "lots"}}})
        assert exc_info.value.paths == ["quotas.api.hourly"]


class Route(Schema, strategy="single_pass"):
    stops = Field(Coerce(tuple))
    legs = Field(Coerce(lambda legs: [tuple(leg) for leg in legs]))


class TestRoundTrip:
    @pytest.mark.asyncio
    async def test_to_dict_keeps_sequence_types(self, factory: ValidationFactory) -> None:
        route = await factory.create(Route, {"stops": ["oslo", "bergen"], "legs": [["oslo", "bergen"]]})
        plain = route.to_dict()
        assert plain == {"stops": ("oslo", "bergen"), "legs": [("oslo", "bergen")]}
        assert type(plain["stops"]) is tuple
        assert type(plain["legs"][0]) is tuple

    @pytest.mark.asyncio
    async def test_instance_as_raw_reproduces_it(self, factory: ValidationFactory) -> None:
        route = await factory.create(Route, {"stops": ["oslo"], "legs": []})
        again = await factory.create(Route, route)
        assert again == route
        assert again.to_dict() == route.to_dict()


class Signup(Schema, strategy="single_pass"):
    password = Field(CoerceTrim(), ValidateLength(minimum=8), staging=True)
    password_hash = Field(DerivedFrom("password", lambda p: hashlib.sha256(p.encode()).hexdigest() if p else None))


class TestStaging:
    @pytest.mark.asyncio
    async def test_staging_field_feeds_others_but_is_not_output(self, factory: ValidationFactory) -> None:
        signup = await factory.create(Signup, {"password": " correct horse "})
        assert signup.password_hash == hashlib.sha256(b"correct horse").hexdigest()
        assert "password" not in signup.to_dict()
        with pytest.raises(AttributeError):
            _ = signup.password

    @pytest.mark.asyncio
    async def test_staging_field_errors_still_reported(self, factory: ValidationFactory) -> None:
        with pytest.raises(ValidationFailed) as exc_info:
            await factory.create(Signup, {"password": "short"})
        assert exc_info.value.paths == ["password"]


class CardPayment(Schema, strategy="single_pass"):
    method = Field(discriminator="card")
    number = Field(CoerceType(str), ValidateLength(minimum=4))


class BankPayment(Schema, strategy="single_pass"):
    method = Field(discriminator="bank")
    iban = Field(CoerceTrim(), ValidateRequired())


class LegacyCardPayment(Schema, strategy="single_pass"):
    method = Field(discriminator="card")
    number = Field(CoerceType(str))
    legacy = Field(DerivedFrom("method", lambda method: True))


class VoucherPayment(Schema, strategy="single_pass"):
    code = Field(CoerceCase("upper"))


class TestDiscriminatedUnions:
    @pytest.mark.asyncio
    async def test_picks_matching_member(self, factory: ValidationFactory) -> None:
        payment = await factory.create([CardPayment, BankPayment], {"method": "bank", "iban": " DE89 3704 "})
        assert isinstance(payment, BankPayment)
        assert payment.iban == "DE89 3704"

    @pytest.mark.asyncio
    async def test_unknown_value(self, factory: ValidationFactory) -> None:
        with pytest.raises(ValidationFailed) as exc_info:
            await factory.create([CardPayment, BankPayment], {"method": "cash"})
        error = exc_info.value.errors[0]
        assert error.path == "method"
        assert error.rule == "discriminator"
        assert error.value == "cash"
        assert error.examples == ["card", "bank"]

    @pytest.mark.asyncio
    async def test_missing_value(self, factory: ValidationFactory) -> None:
        with pytest.raises(ValidationFailed, match="Missing discriminator field 'method'"):
            await factory.create([CardPayment, BankPayment], {"iban": "x"})

    @pytest.mark.asyncio
    async def test_call_overrides_member(self, factory: ValidationFactory) -> None:
        payment = await factory.create(
            [CardPayment, BankPayment],
            {"method": "card", "number": 4111},
            discriminators={"card": LegacyCardPayment},
        )
        assert isinstance(payment, LegacyCardPayment)
        assert payment.legacy is True

    @pytest.mark.asyncio
    async def test_call_adds_member_without_discriminator(self, factory: ValidationFactory) -> None:
        payment = await factory.create(CardPayment, {"method": "voucher", "code": "spring"}, discriminators={"voucher": VoucherPayment})
        assert isinstance(payment, VoucherPayment)
        assert payment.code == "SPRING"

    @pytest.mark.asyncio
    async def test_discriminator_value_validated(self, factory: ValidationFactory) -> None:
        with pytest.raises(ValidationFailed) as exc_info:
            await factory.create(CardPayment, {"method": "bank", "number": "4111"})
        assert exc_info.value.errors[0].rule == "discriminator"

    @pytest.mark.asyncio
    async def test_member_without_discriminator_rejected(self, factory: ValidationFactory) -> None:
        with pytest.raises(RegistrationError, match="no discriminator"):
            await factory.create([CardPayment, VoucherPayment], {"method": "card"})

    @pytest.mark.asyncio
    async def test_duplicate_values_rejected(self, factory: ValidationFactory) -> None:
        with pytest.raises(RegistrationError, match="share discriminator value"):
            await factory.create([CardPayment, LegacyCardPayment], {"method": "card"})

    def test_two_discriminators_rejected_at_definition(self) -> None:
        with pytest.raises(RegistrationError, match="more than one discriminator"):

            class Confused(Schema):
                kind = Field(discriminator="a")
                variant = Field(discriminator="b")


class InvoiceLine(Schema, strategy="single_pass"):
    sku = Field(CoerceTrim(), ValidateRequired())
    quantity = Field(CoerceType(int), ValidateRange(minimum=1))
    currency = Field(DerivedFrom("^.currency"))


class Address(Schema, strategy="single_pass"):
    city = Field(CoerceTrim(), ValidateRequired())


class Invoice(Schema, strategy="single_pass"):
    lines = Field(Nested(InvoiceLine, many=True))
    billing = Field(Nested(Address))
    currency = Field(CoerceCase("upper"))


class TestNested:
    @pytest.mark.asyncio
    async def test_children_read_parent_fields(self, factory: ValidationFactory) -> None:
        invoice = await factory.create(
            Invoice,
            {"currency": "eur", "billing": {"city": " Lyon "}, "lines": [{"sku": "A", "quantity": "2"}, {"sku": "B", "quantity": 1}]},
        )
        assert invoice.currency == "EUR"
        assert isinstance(invoice.billing, Address)
        assert invoice.billing.city == "Lyon"
        assert [line.currency for line in invoice.lines] == ["EUR", "EUR"]
        assert invoice.to_dict()["lines"][0] == {"sku": "A", "quantity": 2, "currency": "EUR"}

    def test_parent_reads_become_edges(self, factory: ValidationFactory) -> None:
        plan = factory.compile(Invoice)
        assert plan.graph.has_dependency("lines", "currency")
        assert plan.order.index("currency") < plan.order.index("lines")

    @pytest.mark.asyncio
    async def test_child_errors_carry_prefixed_paths(self, factory: ValidationFactory) -> None:
        with pytest.raises(ValidationFailed) as exc_info:
            await factory.create(
                Invoice,
                {"currency": "eur", "billing": {"city": ""}, "lines": [{"sku": "A", "quantity": 2}, {"sku": "", "quantity": "0"}]},
            )
        assert exc_info.value.paths == ["billing.city", "lines[1].sku", "lines[1].quantity"]

    @pytest.mark.asyncio
    async def test_wrong_shape(self, factory: ValidationFactory) -> None:
        with pytest.raises(ValidationFailed) as exc_info:
            await factory.create(Invoice, {"currency": "eur", "billing": "Lyon", "lines": {"sku": "A"}})
        assert exc_info.value.paths == ["billing", "lines"]
        assert not any(isinstance(error, NestedValidationError) for error in exc_info.value.errors)

    @pytest.mark.asyncio
    async def test_child_standalone_has_no_parent(self, factory: ValidationFactory) -> None:
        line = await factory.create(InvoiceLine, {"sku": "A", "quantity": 1})
        assert line.currency is None

    def test_nested_target_must_be_schema(self) -> None:
        with pytest.raises(ConfigurationError):
            Nested(dict)


class PasswordChange(Schema, strategy="single_pass"):
    password = Field(CoerceTrim())
    confirm = Field(CrossValidate("password", lambda confirm, password: confirm == password or "Passwords must match"))


class Booking(
    Schema,
    strategy="single_pass",
    rules=[ObjectRule(lambda v: v["start"] <= v["end"] or "start must not be after end", rule="date_order")],
):
    start = Field(CoerceType(int))
    end = Field(CoerceType(int))


class TestCrossValidation:
    @pytest.mark.asyncio
    async def test_cross_rule_passes(self, factory: ValidationFactory) -> None:
        change = await factory.create(PasswordChange, {"password": " hunter22 ", "confirm": "hunter22"})
        assert change.confirm == "hunter22"

    @pytest.mark.asyncio
    async def test_cross_rule_fails(self, factory: ValidationFactory) -> None:
        with pytest.raises(ValidationFailed) as exc_info:
            await factory.create(PasswordChange, {"password": "hunter22", "confirm": "hunter2"})
        error = exc_info.value.errors[0]
        assert (error.path, error.rule, error.message) == ("confirm", "cross_validate", "Passwords must match")

    @pytest.mark.asyncio
    async def test_object_rule(self, factory: ValidationFactory) -> None:
        with pytest.raises(ValidationFailed) as exc_info:
            await factory.create(Booking, {"start": 5, "end": 3})
        error = exc_info.value.errors[0]
        assert (error.path, error.rule) == ("", "date_order")

    @pytest.mark.asyncio
    async def test_object_rules_skip_failed_instances(self, factory: ValidationFactory) -> None:
        with pytest.raises(ValidationFailed) as exc_info:
            await factory.create(Booking, {"start": "soon", "end": 3})
        assert exc_info.value.paths == ["start"]

    @pytest.mark.asyncio
    async def test_cross_rule_on_unmanaged_field(self, factory: ValidationFactory) -> None:
        class Dangling(Schema, strategy="single_pass"):
            note = Field(CoerceTrim())
            other = Field()
            check = Field(CoerceTrim(), CrossValidate("other", lambda c, o: True))

        with pytest.raises(RegistrationError, match="unmanaged field 'other'"):
            await factory.create(Dangling, {})

    def test_object_rules_must_be_object_rules(self) -> None:
        with pytest.raises(RegistrationError):

            class Bad(Schema, rules=[lambda v: True]):  # type: ignore[list-item]
                x = Field(CoerceTrim())


class Profile(Schema, strategy="single_pass", manage_all=True):
    name: str
    nickname = Field()
    age: int = Field(CoerceType(int))


class PartialProfile(Schema, strategy="single_pass", manage_all=["name"]):
    name: str
    nickname: str


class Unmanaged(Schema, strategy="single_pass"):
    name: str
    kept = Field(CoerceTrim())


class TestManagedFields:
    @pytest.mark.asyncio
    async def test_manage_all_processes_every_field(self) -> None:
        factory = ValidationFactory(default_transforms={str: Style("trim", CoerceTrim())})
        profile = await factory.create(Profile, {"name": "  Ada ", "age": "36"})
        assert profile.to_dict() == {"name": "Ada", "nickname": None, "age": 36}

    @pytest.mark.asyncio
    async def test_manage_all_list(self, factory: ValidationFactory) -> None:
        profile = await factory.create(PartialProfile, {"name": "Ada", "nickname": "Countess"})
        assert profile.to_dict() == {"name": "Ada"}

    @pytest.mark.asyncio
    async def test_fields_without_pipelines_are_ignored(self, factory: ValidationFactory) -> None:
        instance = await factory.create(Unmanaged, {"name": "Ada", "kept": " x "})
        assert instance.to_dict() == {"kept": "x"}


class TestReport:
    @pytest.mark.asyncio
    async def test_nested_calls_share_counters(self, scripted) -> None:
        from fieldwright.stages import AITransform

        class Tagged(Schema, strategy="single_pass"):
            tag = Field(AITransform("Normalise the tag"))

        class Post(Schema, strategy="single_pass"):
            tags = Field(Nested(Tagged, many=True))

        handler = scripted(["python"])
        resolution = await ValidationFactory(ai_handler=handler).resolve(Post, {"tags": [{"tag": "Py"}, {"tag": "py3"}]})
        assert resolution.report.ai_calls == 2
        assert resolution.report.state is InstanceState.DONE
        assert [tag.tag for tag in resolution.instance.tags] == ["python", "python"]
