"""Cognito user pools and app clients."""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from aws_cdk import Duration, RemovalPolicy
from aws_cdk import aws_cognito as cognito
from aws_cdk import aws_iam as iam
from constructs import Construct

from infrakit.core import BaseConfig, Builder, ResourceSpec

MIN_PASSWORD_LENGTH = 8


# === User pools ===

@dataclass(frozen=True)
class UserPoolConfig(BaseConfig):
    self_sign_up_enabled: bool | None = None
    sign_in_aliases: cognito.SignInAliases | None = None
    auto_verify: cognito.AutoVerifiedAttrs | None = None
    password_policy: cognito.PasswordPolicy | None = None
    account_recovery: cognito.AccountRecovery | None = None
    mfa: cognito.Mfa | None = None
    mfa_second_factor: cognito.MfaSecondFactor | None = None
    email: cognito.UserPoolEmail | None = None
    sms_role: iam.IRole | None = None
    lambda_triggers: cognito.UserPoolTriggers | None = None
    standard_attributes: cognito.StandardAttributes | None = None
    custom_attributes: tuple[tuple[str, cognito.ICustomAttribute], ...] = ()
    removal_policy: RemovalPolicy | None = None
    deletion_protection: bool | None = None


@dataclass(frozen=True, kw_only=True, eq=False)
class UserPoolSpec(ResourceSpec[cognito.UserPool]):
    kind = "UserPool"
    construct_type = cognito.UserPool


class UserPoolBuilder(Builder[UserPoolConfig, UserPoolSpec]):
    """User pool with email or username sign-in and verified email addresses.

    Self sign-up stays off, accounts recover by email only and passwords need
    eight characters drawn from every character class.
    """

    kind = "UserPool"
    config_type = UserPoolConfig
    defaults = MappingProxyType({
        "self_sign_up_enabled": False,
        "sign_in_aliases": cognito.SignInAliases(email=True, username=True),
        "auto_verify": cognito.AutoVerifiedAttrs(email=True),
        "password_policy": cognito.PasswordPolicy(
            min_length=MIN_PASSWORD_LENGTH,
            require_lowercase=True,
            require_uppercase=True,
            require_digits=True,
            require_symbols=True,
        ),
        "account_recovery": cognito.AccountRecovery.EMAIL_ONLY,
    })

    def self_sign_up(self, enabled: bool = True) -> UserPoolBuilder:
        return self._replace(self_sign_up_enabled=enabled)

    def sign_in_aliases(self, aliases: cognito.SignInAliases) -> UserPoolBuilder:
        return self._replace(sign_in_aliases=aliases)

    def auto_verify(self, attributes: cognito.AutoVerifiedAttrs) -> UserPoolBuilder:
        return self._replace(auto_verify=attributes)

    def password_policy(self, policy: cognito.PasswordPolicy) -> UserPoolBuilder:
        return self._replace(password_policy=policy)

    def account_recovery(self, recovery: cognito.AccountRecovery) -> UserPoolBuilder:
        return self._replace(account_recovery=recovery)

    def mfa(self, mfa: cognito.Mfa, second_factor: cognito.MfaSecondFactor | None = None) -> UserPoolBuilder:
        return self._replace(mfa=mfa, mfa_second_factor=second_factor)

    def email(self, email: cognito.UserPoolEmail) -> UserPoolBuilder:
        return self._replace(email=email)

    def sms_role(self, role: iam.IRole) -> UserPoolBuilder:
        return self._replace(sms_role=role)

    def lambda_triggers(self, triggers: cognito.UserPoolTriggers) -> UserPoolBuilder:
        return self._replace(lambda_triggers=triggers)

    def standard_attributes(self, attributes: cognito.StandardAttributes) -> UserPoolBuilder:
        return self._replace(standard_attributes=attributes)

    def custom_attribute(self, name: str, attribute: cognito.ICustomAttribute) -> UserPoolBuilder:
        return self._append("custom_attributes", [(name, attribute)])

    def removal_policy(self, policy: RemovalPolicy) -> UserPoolBuilder:
        return self._replace(removal_policy=policy)

    def deletion_protection(self, enabled: bool = True) -> UserPoolBuilder:
        return self._replace(deletion_protection=enabled)

    def finalize(self) -> UserPoolSpec:
        config = self.config
        policy = self.value("password_policy")
        if policy.min_length is not None and policy.min_length < MIN_PASSWORD_LENGTH:
            raise self.unsafe("password_policy", f"minimum length {policy.min_length} is below {MIN_PASSWORD_LENGTH}")
        if config.mfa_second_factor is not None and config.mfa in (None, cognito.Mfa.OFF):
            raise self.unsafe("mfa_second_factor", "a second factor needs mfa OPTIONAL or REQUIRED")

        names = [name for name, _ in config.custom_attributes]
        if len(set(names)) != len(names):
            raise self.unsafe("custom_attributes", f"duplicate custom attributes in {names}")

        return self.spec(UserPoolSpec, {
            "user_pool_name": self.name,
            "self_sign_up_enabled": self.value("self_sign_up_enabled"),
            "sign_in_aliases": self.value("sign_in_aliases"),
            "auto_verify": self.value("auto_verify"),
            "password_policy": policy,
            "account_recovery": self.value("account_recovery"),
            "mfa": config.mfa,
            "mfa_second_factor": config.mfa_second_factor,
            "email": config.email,
            "sms_role": config.sms_role,
            "lambda_triggers": config.lambda_triggers,
            "standard_attributes": config.standard_attributes,
            "custom_attributes": dict(config.custom_attributes) or None,
            "removal_policy": config.removal_policy,
            "deletion_protection": config.deletion_protection,
        })


def user_pool(name: str) -> UserPoolBuilder:
    return UserPoolBuilder(name)


# === App clients ===

@dataclass(frozen=True)
class UserPoolClientConfig(BaseConfig):
    user_pool: Any = None
    generate_secret: bool | None = None
    auth_flows: cognito.AuthFlow | None = None
    prevent_user_existence_errors: bool | None = None
    o_auth: cognito.OAuthSettings | None = None
    supported_identity_providers: tuple[cognito.UserPoolClientIdentityProvider, ...] = ()
    access_token_validity: Duration | None = None
    id_token_validity: Duration | None = None
    refresh_token_validity: Duration | None = None


@dataclass(frozen=True, kw_only=True, eq=False)
class UserPoolClientSpec(ResourceSpec[cognito.UserPoolClient]):
    kind = "UserPoolClient"
    construct_type = cognito.UserPoolClient


class UserPoolClientBuilder(Builder[UserPoolClientConfig, UserPoolClientSpec]):
    """Public SRP client that hides whether a user exists."""

    kind = "UserPoolClient"
    config_type = UserPoolClientConfig
    defaults = MappingProxyType({
        "generate_secret": False,
        "auth_flows": cognito.AuthFlow(user_srp=True, user_password=True),
        "prevent_user_existence_errors": True,
    })

    def user_pool(self, pool: Any) -> UserPoolClientBuilder:
        """A ``cognito.IUserPool`` or a user pool descriptor."""
        return self._replace(user_pool=pool)

    def generate_secret(self, enabled: bool = True) -> UserPoolClientBuilder:
        return self._replace(generate_secret=enabled)

    def auth_flows(self, flows: cognito.AuthFlow) -> UserPoolClientBuilder:
        return self._replace(auth_flows=flows)

    def prevent_user_existence_errors(self, enabled: bool = True) -> UserPoolClientBuilder:
        return self._replace(prevent_user_existence_errors=enabled)

    def o_auth(self, settings: cognito.OAuthSettings) -> UserPoolClientBuilder:
        return self._replace(o_auth=settings)

    def identity_providers(self, *providers: cognito.UserPoolClientIdentityProvider) -> UserPoolClientBuilder:
        return self._append("supported_identity_providers", providers)

    def token_validity(
        self,
        access: Duration | None = None,
        id_token: Duration | None = None,
        refresh: Duration | None = None,
    ) -> UserPoolClientBuilder:
        return self._replace(access_token_validity=access, id_token_validity=id_token, refresh_token_validity=refresh)

    def finalize(self) -> UserPoolClientSpec:
        config = self.config
        pool = self.require("user_pool", "user pool")
        if config.refresh_token_validity is not None:
            refresh_minutes = config.refresh_token_validity.to_minutes()
            for field in ("access_token_validity", "id_token_validity"):
                validity = getattr(config, field)
                if validity is not None and validity.to_minutes() > refresh_minutes:
                    raise self.unsafe(field, "must not outlive the refresh token")

        return self.spec(UserPoolClientSpec, {
            "user_pool": pool,
            "user_pool_client_name": self.name,
            "generate_secret": self.value("generate_secret"),
            "auth_flows": self.value("auth_flows"),
            "prevent_user_existence_errors": self.value("prevent_user_existence_errors"),
            "o_auth": config.o_auth,
            "supported_identity_providers": list(config.supported_identity_providers) or None,
            "access_token_validity": config.access_token_validity,
            "id_token_validity": config.id_token_validity,
            "refresh_token_validity": config.refresh_token_validity,
        })


def user_pool_client(name: str) -> UserPoolClientBuilder:
    return UserPoolClientBuilder(name)
