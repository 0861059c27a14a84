"""Rust codec generator for polyglot protocol schemas."""

from .deps import EmissionPlan as EmissionPlan
from .deps import ImportRef as ImportRef
from .deps import analyze as analyze
from .errors import *
from .formatter import Formatter as Formatter
from .formatter import NoopFormatter as NoopFormatter
from .formatter import RustFmt as RustFmt
from .kinds import Kind as Kind
from .kinds import classify as classify
from .kinds import describe as describe
from .lut import build_decode_lut as build_decode_lut
from .lut import build_encode_lut as build_encode_lut
from .parser import load as load
from .parser import parse as parse
from .parser import parse_many as parse_many
from .rust import GenerationResult as GenerationResult
from .rust import generate as generate
from .rust import render as render
from .types import *
