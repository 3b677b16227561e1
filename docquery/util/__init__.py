from .reusable import Reusable
from .settings_handler import DocQuerySettingsHandler
from .settings_dict import DocQuerySettingsDict
from .params import json_or_none, decode_if_string
