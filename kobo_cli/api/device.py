"""
Identity of the reference Android reading app the client presents itself as.

The store rejects or stalls requests that deviate from this fingerprint,
so every value here is sent exactly as written.
"""

import base64

AFFILIATE = "Kobo"
APPLICATION_VERSION = "10.1.2.39807"
PLATFORM_ID = "00000000-0000-0000-0000-000000004000"
CARRIER_NAME = "310270"
DEVICE_MODEL = "Pixel"
DEVICE_OS = "Android"
DEVICE_OS_VERSION = "33"
USER_AGENT = (
    "Mozilla/5.0 (Linux; Android 13; Pixel Build/TQ2B.230505.005.A1; wv) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Version/4.0 "
    "Chrome/101.0.4951.61 Safari/537.36 "
    f"KoboApp/{APPLICATION_VERSION} KoboPlatform Id/{PLATFORM_ID} "
    "KoboAffiliate/Kobo KoboBuildFlavor/global"
)

CLIENT_KEY = base64.b64encode(PLATFORM_ID.encode("ascii")).decode("ascii")

DEFAULT_HEADERS = {
    "User-Agent": USER_AGENT,
    "x-kobo-affiliatename": AFFILIATE,
    "x-kobo-appversion": APPLICATION_VERSION,
    "x-kobo-platformid": PLATFORM_ID,
    "x-kobo-carriername": CARRIER_NAME,
    "x-kobo-devicemodel": DEVICE_MODEL,
    "x-kobo-deviceos": DEVICE_OS,
    "x-kobo-deviceosversion": DEVICE_OS_VERSION,
    "X-Requested-With": "com.kobobooks.android",
    "Accept-Encoding": "gzip, deflate",
}

# Query parameters the sign-in page expects from the app, in order.
SIGN_IN_QUERY = (
    ("wsa", AFFILIATE),
    ("pwsav", APPLICATION_VERSION),
    ("pwspid", PLATFORM_ID),
    ("pwsdid", None),
    ("wscfv", "1.5"),
    ("wscf", "kepub"),
    ("wsmc", CARRIER_NAME),
    ("pwspov", DEVICE_OS_VERSION),
    ("pwspt", "Mobile"),
    ("pwsdm", DEVICE_MODEL),
)
