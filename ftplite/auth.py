import warnings
from dataclasses import dataclass
from typing import Tuple, TypeVar

# Enhanced type definitions for improved type safety and clarity
BasicAuthType = TypeVar("BasicAuthType", bound="Basic")
GuestAuthType = TypeVar("GuestAuthType", bound="Guest")
Username = str
Password = str
Email = str


@dataclass
class Basic:
    """
    Username and password login for FTP servers.

    FTP sends both in plaintext over the control channel with USER and PASS.
    That's just how the protocol works. The client never logs the password;
    every observability surface sees ``PASS ********`` instead.

    Attributes:
        user: Login name sent with USER.
        password: Secret sent with PASS when the server asks for it (331).
    """

    user: Username
    password: Password

    def __post_init__(self) -> None:
        """
        Validate the credentials.

        Returns:
            None

        Raises:
            ValueError: If the username is empty or either field contains a line break.
        """
        if not self.user.strip():
            raise ValueError("Username cannot be empty or whitespace")

        # A CR or LF would let the credential smuggle in a second command
        for value in (self.user, self.password):
            if "\r" in value or "\n" in value:
                raise ValueError("Credentials cannot contain line breaks")

        if not self.password:
            warnings.warn(
                "Password is empty. Most servers will reject the login unless "
                "they accept the user without a password."
            )

    def credentials(self) -> Tuple[Username, Password]:
        return self.user, self.password


@dataclass
class Guest:
    """
    Anonymous login for public FTP servers.

    Logs in as ``anonymous`` and, by convention, sends an email address as
    the password.

    Attributes:
        email: Sent as the password if the server asks for one.
    """

    email: Email = "anonymous@"

    def __post_init__(self) -> None:
        if "\r" in self.email or "\n" in self.email:
            raise ValueError("Guest email cannot contain line breaks")

    def credentials(self) -> Tuple[Username, Password]:
        return "anonymous", self.email
