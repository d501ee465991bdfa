from .rational import *
from .rational import __all__
