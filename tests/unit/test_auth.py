"""Tests for Cognito user pools and app clients."""
from __future__ import annotations

import aws_cdk as cdk
import aws_cdk.assertions as assertions
import pytest
from aws_cdk import Duration
from aws_cdk import aws_cognito as cognito

from infrakit.auth import user_pool, user_pool_client
from infrakit.errors import MissingPropertyError, UnsafeConfigurationError


class TestUserPool:
    """Test the user pool builder."""

    def test_defaults_synthesized(self, stack: cdk.Stack) -> None:
        user_pool("orchestra-users").build().instantiate(stack)

        assertions.Template.from_stack(stack).has_resource_properties("AWS::Cognito::UserPool", {
            "UserPoolName": "orchestra-users",
            "AliasAttributes": ["email"],
            "AutoVerifiedAttributes": ["email"],
            "AdminCreateUserConfig": {"AllowAdminCreateUserOnly": True},
            "AccountRecoverySetting": {"RecoveryMechanisms": [{"Name": "verified_email", "Priority": 1}]},
            "Policies": {
                "PasswordPolicy": assertions.Match.object_like({
                    "MinimumLength": 8,
                    "RequireLowercase": True,
                    "RequireUppercase": True,
                    "RequireNumbers": True,
                    "RequireSymbols": True,
                }),
            },
        })

    def test_mfa_and_self_sign_up(self, stack: cdk.Stack) -> None:
        (
            user_pool("orchestra-users")
            .self_sign_up()
            .mfa(cognito.Mfa.REQUIRED, cognito.MfaSecondFactor(sms=False, otp=True))
            .custom_attribute("tenant", cognito.StringAttribute(mutable=False))
            .build()
            .instantiate(stack)
        )

        assertions.Template.from_stack(stack).has_resource_properties("AWS::Cognito::UserPool", {
            "AdminCreateUserConfig": {"AllowAdminCreateUserOnly": False},
            "MfaConfiguration": "ON",
            "EnabledMfas": ["SOFTWARE_TOKEN_MFA"],
            "Schema": [assertions.Match.object_like({"Name": "tenant", "Mutable": False})],
        })

    @pytest.mark.parametrize(("configure", "field"), [
        (lambda b: b.password_policy(cognito.PasswordPolicy(min_length=6)), "password_policy"),
        (lambda b: b.mfa(cognito.Mfa.OFF, cognito.MfaSecondFactor(sms=True, otp=False)), "mfa_second_factor"),
        (lambda b: b.custom_attribute("tenant", cognito.StringAttribute())
         .custom_attribute("tenant", cognito.StringAttribute()), "custom_attributes"),
    ])
    def test_weak_or_conflicting_options_rejected(self, configure, field: str) -> None:
        with pytest.raises(UnsafeConfigurationError) as excinfo:
            configure(user_pool("orchestra-users")).build()
        assert excinfo.value.field == field


class TestUserPoolClient:
    """Test app clients on descriptor pools."""

    def test_defaults_synthesized(self, stack: cdk.Stack) -> None:
        pool = user_pool("orchestra-users").build()
        client = user_pool_client("orchestra-web").user_pool(pool).build()
        pool.instantiate(stack)
        client.instantiate(stack)

        assertions.Template.from_stack(stack).has_resource_properties("AWS::Cognito::UserPoolClient", {
            "ClientName": "orchestra-web",
            "GenerateSecret": False,
            "PreventUserExistenceErrors": "ENABLED",
            "ExplicitAuthFlows": assertions.Match.array_with(["ALLOW_USER_SRP_AUTH"]),
        })

    def test_user_pool_required(self) -> None:
        with pytest.raises(MissingPropertyError) as excinfo:
            user_pool_client("orchestra-web").build()
        assert excinfo.value.field == "user pool"

    def test_token_validity_override(self) -> None:
        spec = (
            user_pool_client("orchestra-web")
            .user_pool("pool")
            .token_validity(access=Duration.minutes(30), refresh=Duration.days(1))
            .build()
        )
        assert spec.props["access_token_validity"].to_minutes() == 30
        assert "id_token_validity" not in spec.props

    def test_access_token_outliving_refresh_rejected(self) -> None:
        with pytest.raises(UnsafeConfigurationError) as excinfo:
            (
                user_pool_client("orchestra-web")
                .user_pool("pool")
                .token_validity(access=Duration.hours(2), refresh=Duration.hours(1))
                .build()
            )
        assert excinfo.value.field == "access_token_validity"
