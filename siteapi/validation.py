import re

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Temporary inbox providers rejected at signup
DISPOSABLE_DOMAINS = frozenset({
    "10minutemail.com", "10minutemail.net", "10minutemail.org",
    "20minutemail.com", "33mail.com",
    "anonbox.net", "anonymbox.com", "anonymousemail.me",
    "discard.email", "dispostable.com",
    "emailondeck.com", "emkei.cf", "emkei.ga", "emkei.gq", "emkei.ml", "emkei.tk",
    "fakeinbox.com", "fakemail.net",
    "getnada.com", "nada.email",
    "guerrillamail.biz", "guerrillamail.com", "guerrillamail.de",
    "guerrillamail.net", "guerrillamail.org", "guerrillamailblock.com",
    "incognitomail.com", "jetable.org",
    "mailcatch.com", "mailexpire.com", "maildrop.cc", "maildrop.com",
    "mailinator.com", "mailinator.net", "mailinator2.com",
    "mailnesia.com", "mailnator.com", "mailtemp.info",
    "mintemail.com", "mohmal.com", "mytemp.email",
    "sharklasers.com", "spam4.me", "spambog.com", "spambox.us", "spamgourmet.com",
    "temp-mail.com", "temp-mail.io", "temp-mail.org",
    "tempinbox.com", "tempmail.com", "tempmail.net", "tempmail.us",
    "throwaway.email", "throwawaymail.com", "tmpeml.info",
    "trashmail.com", "trashmail.net",
    "yopmail.com", "yopmail.fr", "yopmail.net",
})


def normalize_email(email):
    return (email or "").strip().lower()


def is_valid_email(email):
    return bool(email) and EMAIL_RE.match(email) is not None


def is_disposable_email(email):
    domain = normalize_email(email).rsplit("@", 1)[-1]
    return domain in DISPOSABLE_DOMAINS
