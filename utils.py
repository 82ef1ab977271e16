# -*- coding: utf-8 -*-
"""
utils.py - Helper functions, constants and settings management for the Mushaf highlighter.
"""

import os
import sys
import json
import logging

import arabic_reshaper
from bidi.algorithm import get_display


def resource_path(relative_path):
    """ Get absolute path to resource, works for dev and for PyInstaller """
    try:
        base_path = sys._MEIPASS # type: ignore
    except Exception:
        base_path = os.path.dirname(os.path.abspath(__file__))
    return os.path.join(base_path, relative_path)


# --- Static data files ---
MUSHAF_PAGES_FILE = resource_path(os.path.join("data", "mushaf_pages.json"))
QURAN_TEXT_DIR = resource_path(os.path.join("data", "quran_text"))

TOTAL_PAGES = 604
TOTAL_SURAHS = 114

# Surah At-Tawbah is the only surah written without the Basmala.
SURAH_WITHOUT_BASMALA = 9
BASMALA_TEXT = "بِسْمِ ٱللَّهِ ٱلرَّحْمَٰنِ ٱلرَّحِيمِ"

# Settings file path
if sys.platform.startswith('win'):
    # Windows: %APPDATA%/MushafHighlighter/settings.json
    _app_data_dir = os.path.join(os.environ.get('APPDATA', os.path.expanduser('~')), "MushafHighlighter")
else:
    # Linux/macOS: ~/.config/MushafHighlighter/settings.json
    _app_data_dir = os.path.join(os.path.expanduser('~'), '.config', "MushafHighlighter")

APP_DATA_DIR = _app_data_dir
SETTINGS_FILE = os.path.join(APP_DATA_DIR, "settings.json")

DEFAULT_SETTINGS = {
    "script_id": "uthmani-hafs",
    "text_api_url": "https://api.alquran.cloud/v1",
    # Script id -> edition identifier of the text API
    "script_editions": {
        "uthmani-hafs": "quran-uthmani",
        "simple": "quran-simple",
        "simple-clean": "quran-simple-clean",
        "tajweed": "quran-tajweed",
    },
    "text_data_dir": None,
    "highlights_api_url": None,
    "highlights_api_token": None,
    "highlights_dir": os.path.join(APP_DATA_DIR, "highlights"),
    "request_timeout": 15,
    "visibility_threshold": 0.5,
    "observer_grace_ms": 150,
    "log_level": "INFO",
}

SURAH_NAMES = [
    "الفاتحة", "البقرة", "آل عمران", "النساء", "المائدة", "الأنعام", "الأعراف", "الأنفال", "التوبة", "يونس",
    "هود", "يوسف", "الرعد", "إبراهيم", "الحجر", "النحل", "الإسراء", "الكهف", "مريم", "طه",
    "الأنبياء", "الحج", "المؤمنون", "النور", "الفرقان", "الشعراء", "النمل", "القصص", "العنكبوت", "الروم",
    "لقمان", "السجدة", "الأحزاب", "سبأ", "فاطر", "يس", "الصافات", "ص", "الزمر", "غافر",
    "فصلت", "الشورى", "الزخرف", "الدخان", "الجاثية", "الأحقاف", "محمد", "الفتح", "الحجرات", "ق",
    "الذاريات", "الطور", "النجم", "القمر", "الرحمن", "الواقعة", "الحديد", "المجادلة", "الحشر", "الممتحنة",
    "الصف", "الجمعة", "المنافقون", "التغابن", "الطلاق", "التحريم", "الملك", "القلم", "الحاقة", "المعارج",
    "نوح", "الجن", "المزمل", "المدثر", "القيامة", "الإنسان", "المرسلات", "النبأ", "النازعات", "عبس",
    "التكوير", "الانفطار", "المطففين", "الانشقاق", "البروج", "الطارق", "الأعلى", "الغاشية", "الفجر", "البلد",
    "الشمس", "الليل", "الضحى", "الشرح", "التين", "العلق", "القدر", "البينة", "الزلزلة", "العاديات",
    "القارعة", "التكاثر", "العصر", "الهمزة", "الفيل", "قريش", "الماعون", "الكوثر", "الكافرون", "النصر",
    "المسد", "الإخلاص", "الفلق", "الناس"
]

SURAH_AYAH_COUNTS = [
    7, 286, 200, 176, 120, 165, 206, 75, 129, 109,
    123, 111, 43, 52, 99, 128, 111, 110, 98, 135,
    112, 78, 118, 64, 77, 227, 93, 88, 69, 60,
    34, 30, 73, 54, 45, 83, 182, 88, 75, 85,
    54, 53, 89, 59, 37, 35, 38, 29, 18, 45,
    60, 49, 62, 55, 78, 96, 29, 22, 24, 13,
    14, 11, 11, 18, 12, 12, 30, 52, 52, 44,
    28, 28, 20, 56, 40, 31, 50, 40, 46, 42,
    29, 19, 36, 25, 22, 17, 19, 26, 30, 20,
    15, 21, 11, 8, 8, 19, 5, 8, 8, 11,
    11, 8, 3, 9, 5, 4, 7, 3, 6, 3,
    5, 4, 5, 6
]


def is_valid_surah(surah_no) -> bool:
    return isinstance(surah_no, int) and 1 <= surah_no <= TOTAL_SURAHS


def get_surah_name(surah_no):
    """Gets the Arabic name of a surah by its number."""
    if is_valid_surah(surah_no):
        return SURAH_NAMES[surah_no - 1]
    return f"سورة رقم {surah_no}"


def get_ayah_count(surah_no) -> int:
    if not is_valid_surah(surah_no):
        raise ValueError(f"Invalid surah number: {surah_no}")
    return SURAH_AYAH_COUNTS[surah_no - 1]


# ---------- Settings Management ----------
def load_settings(path=None) -> dict:
    """Loads application settings from a JSON file, merged over the defaults."""
    path = path or SETTINGS_FILE
    settings = json.loads(json.dumps(DEFAULT_SETTINGS))
    if os.path.exists(path):
        try:
            with open(path, 'r', encoding='utf-8') as f:
                stored = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logging.error(f"Error loading settings from {path}: {e}")
            return settings
        if not isinstance(stored, dict):
            logging.error(f"Ignoring settings file {path}: expected a JSON object")
            return settings
        for key, value in stored.items():
            # Editions are merged so a user file can add a script without repeating the defaults
            if key == "script_editions" and isinstance(value, dict):
                settings[key].update(value)
            else:
                settings[key] = value
    return settings


def save_settings(settings: dict, path=None):
    """Saves application settings to a JSON file."""
    path = path or SETTINGS_FILE
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(settings, f, ensure_ascii=False, indent=4)
    except IOError as e:
        logging.error(f"Error saving settings to {path}: {e}")


def setup_logging(level="INFO"):
    """Configures the root logger once for the command-line front end."""
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


# ---------- Arabic display ----------
def fix_arabic_display(text):
    """Reshapes Arabic text for terminals that do not do their own shaping."""
    if not text:
        return text
    configuration = {
        'delete_harakat': False,
        'support_zwj': True,
        'shift_harakat_position': True
    }
    reshaper = arabic_reshaper.ArabicReshaper(configuration=configuration)
    reshaped_text = reshaper.reshape(text)
    return get_display(reshaped_text)


def to_arabic_numerals(number: int) -> str:
    """Converts a Latin digit integer to an Arabic-Indic numeral string."""
    arabic_map = "٠١٢٣٤٥٦٧٨٩"
    return "".join(arabic_map[int(digit)] for digit in str(number))
