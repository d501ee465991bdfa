#
# An implementation of exact rational arithmetic on arbitrary-precision integers
#

import copy
import logging
import re
import threading
from collections import namedtuple
from decimal import Decimal, Context as DecimalContext, localcontext
from enum import IntFlag, IntEnum
from fractions import Fraction
from math import copysign, gcd, inf, log, nan
from typing import NamedTuple
from struct import Struct

import attr

__all__ = ('Context', 'DefaultContext', 'get_context', 'set_context', 'local_context',
           'Flags', 'HandlerKind', 'Result',
           'RationalError', 'Invalid', 'ConversionSyntax', 'InvalidArgument',
           'InvalidComparison', 'DivisionByZero', 'Overflow', 'Inexact',
           'TextFormat', 'FractionFormat', 'DecimalDigitsFormat', 'MixedFormat',
           'FloatFormat', 'FloatTuple', 'DecimalFormat', 'ScaledDecimal',
           'Rational', 'ContinuedFraction', 'normalize',
           'OP_PARSE', 'OP_COMPARE', 'OP_TO_INT', 'OP_TO_FLOAT', 'OP_TO_DECIMAL',
           'OP_FROM_COMPLEX', 'OP_CONTINUED_FRACTION',
           'IEEEhalf', 'IEEEsingle', 'IEEEdouble', 'Decimal128',
           'Zero', 'One', 'MinusOne', 'Half', 'MinusHalf',
           'NaN', 'PositiveInfinity', 'NegativeInfinity')


LOG = logging.getLogger(__name__)


# Operation names
OP_PARSE = 'parse'
OP_COMPARE = 'compare'
OP_TO_INT = 'to_int'
OP_TO_FLOAT = 'to_float'
OP_TO_DECIMAL = 'to_decimal'
OP_FROM_COMPLEX = 'from_complex'
OP_CONTINUED_FRACTION = 'continued_fraction'


class MinMaxFlags(IntFlag):
    MIN = 0x00
    MAX = 0x01
    NUM = 0x02


# Operation status flags.
class Flags(IntFlag):
    INVALID     = 0x01
    DIV_BY_ZERO = 0x02
    OVERFLOW    = 0x04
    INEXACT     = 0x08


class Result(NamedTuple):
    '''The outcome of a non-raising operation such as try_parse().  On failure value is a
    substitute (NaN for parsing, 0 for integer conversion).'''
    success: bool
    value: object


FloatTuple = namedtuple('FloatTuple', 'sign exponent mantissa')
ScaledDecimal = namedtuple('ScaledDecimal', 'sign coefficient scale')


@attr.s(slots=True, kw_only=True, frozen=True)
class TextFormat:
    '''Controls the output of conversion of a Rational to a string.

    Three modes are supported:

       F   "numerator/denominator"
       D   a decimal expansion truncated to a fixed number of digits, e.g. "3.142857"
       W   a mixed number, e.g. "3 1/7"

    Non-finite values (NaN and the infinities) are always output in F mode.
    '''

    # One of 'F', 'D' or 'W'
    mode = attr.ib(default='F', validator=attr.validators.in_(('F', 'D', 'W')))
    # The number of digits after the decimal point in D mode.  Ignored otherwise.
    digits = attr.ib(default=15, validator=attr.validators.instance_of(int))

    @digits.validator
    def _check_digits(self, attribute, value):
        if value < 0:
            raise ValueError(f'digits cannot be negative: {value}')

    @classmethod
    def from_spec(cls, spec):
        '''Return the TextFormat for a format specifier: '', 'F', 'W', 'D' or 'D<n>'.'''
        if not spec:
            return FractionFormat
        match = FORMAT_SPEC_REGEX.match(spec)
        if match is None:
            raise ValueError(f'invalid format specifier for Rational: {spec!r}')
        digits = match.group(2)
        if digits:
            return cls(mode='D', digits=int(digits))
        return cls(mode=spec[0])

    def format(self, value):
        '''Return value formatted as a string.'''
        numerator, denominator = value
        if self.mode == 'F' or denominator == 0:
            return f'{numerator}/{denominator}'

        whole = trunc_div(numerator, denominator)
        remainder = abs(numerator) % denominator
        # Truncation towards zero loses the sign of values between -1 and 0
        sign = '-' if numerator < 0 and whole == 0 else ''
        if self.mode == 'W':
            return f'{sign}{whole} {remainder}/{denominator}'

        if self.digits == 0:
            return f'{sign}{whole}'
        fraction = remainder * 10 ** self.digits // denominator
        return f'{sign}{whole}.{fraction:0{self.digits}d}'


FractionFormat = TextFormat()
DecimalDigitsFormat = TextFormat(mode='D')
MixedFormat = TextFormat(mode='W')


#
# Signals
#

class RationalError(ArithmeticError):
    '''All arithmetic exceptions signalled by this module subclass from this.

    RationalError expects two arguments:

         def __init__(self, op_tuple, result):

    op_tuple is a tuple of the operation name and operands causing the signal.  result
    is the value that default exception handling should deliver.
    '''

    flag_to_raise = 0

    @property
    def op_tuple(self):
        return self.args[0]

    @property
    def default_result(self):
        return self.args[1]

    def signal(self, context=None):
        '''Call to signal an exception.  This routine handles the exception according to
        default or alternative exception handling as specified in the context.'''
        context = context or get_context()
        kind, handler = context.handler(self.__class__)
        result = self.default_result

        if kind != HandlerKind.NO_FLAG:
            context.flags |= self.flag_to_raise
            if kind == HandlerKind.RECORD_EXCEPTION:
                context.exceptions.append(self)

        if kind == HandlerKind.RAISE:
            raise self
        if kind == HandlerKind.SUBSTITUTE_VALUE:
            result = handler(self, context)

        return result

    def __str__(self):
        operation, *operands = self.op_tuple
        operands = ', '.join(repr(operand) for operand in operands)
        return f'{self.__class__.__name__} signalled by {operation}({operands})'


class Invalid(RationalError):
    '''Invalid operation base class.  Signalled when an operation has no usefully defineable
    result.'''

    flag_to_raise = Flags.INVALID


class ConversionSyntax(Invalid, ValueError):
    '''Signalled when a string matches none of the rational grammars.  The default result is
    NaN.'''


class InvalidArgument(Invalid, ValueError):
    '''Signalled when converting from a value that has no rational equivalent, such as a
    complex number with a non-zero imaginary part.  The default result is NaN.'''


class InvalidComparison(Invalid, TypeError):
    '''Signalled when comparing against a type that cannot be converted to a Rational.  The
    default result is None.'''


class DivisionByZero(RationalError, ZeroDivisionError):
    '''Signalled when a NaN or infinity, which have a zero denominator, is converted to an
    integer.'''

    flag_to_raise = Flags.DIV_BY_ZERO


class Overflow(RationalError, OverflowError):
    '''Signalled when the destination format cannot represent the magnitude of the value.  The
    default result is the value clamped to the destination range.'''

    flag_to_raise = Flags.OVERFLOW


class Inexact(RationalError):
    '''Signalled when a conversion to a fixed-width format cannot represent the value
    exactly.'''

    flag_to_raise = Flags.INEXACT


# Alternate exception handling

class HandlerKind(IntEnum):
    '''Indicates how a signalled exception should be handled.'''
    # Return the default result and raise the associated flag
    DEFAULT = 0

    # Return the default result without raising the associated flag
    NO_FLAG = 1

    # As for DEFAULT but also record the exception in the context's exceptions list
    RECORD_EXCEPTION = 2

    # Substitute a value for the default result.  A handler must be provided with
    # signature
    #
    #    def handler(exception, context):
    #
    # The value returned by the handler will become the operation's result.
    SUBSTITUTE_VALUE = 3

    # Raise the exception immediately
    RAISE = 4

    def requires_handler(self):
        return self == HandlerKind.SUBSTITUTE_VALUE


class Context:
    '''The execution context for operations.  Carries the status flags, the handlers of
    signalled exceptions and a list of recorded exceptions.'''

    __slots__ = ('flags', 'handlers', 'exceptions')

    def __init__(self, *, flags=0):
        '''flags represents the initially raised flags.'''
        self.flags = flags
        self.handlers = {}
        self.exceptions = []

    def copy(self):
        '''Return a (deep) copy of the context.'''
        return copy.deepcopy(self)

    def set_handler(self, exc_classes, kind, handler=None):
        '''Handle the signal class, or each class in a list or tuple of them, as kind says.
        handler is the substitution callback and is required for SUBSTITUTE_VALUE only.'''
        if isinstance(exc_classes, (tuple, list)):
            classes = exc_classes
        else:
            classes = (exc_classes, )
        for exc_class in classes:
            if not issubclass(exc_class, RationalError):
                raise TypeError(f'{exc_class.__name__} is not a RationalError signal')
        if not isinstance(kind, HandlerKind):
            raise TypeError('kind must be a HandlerKind instance')
        if kind.requires_handler() and handler is None:
            raise ValueError(f'handler not given for kind {kind!r}')
        if not kind.requires_handler() and handler is not None:
            raise ValueError(f'handler given for kind {kind!r}')
        self.handlers.update((exc_class, (kind, handler)) for exc_class in classes)

    def handler(self, exc_class):
        '''Return a (handler_kind, callback) pair for a signal class.'''
        if not issubclass(exc_class, RationalError):
            raise TypeError('exc_class must be a subclass of RationalError')

        for cls in exc_class.mro():
            handler = self.handlers.get(cls)
            if handler:
                return handler

        return HandlerKind.DEFAULT, None

    def __repr__(self):
        return f'<Context flags={self.flags!r}>'


#
# The normalizer.  Every Rational is constructed through it.
#

def normalize(numerator, denominator):
    '''Return the canonical (numerator, denominator) pair of the ratio numerator/denominator.

    The denominator is made non-negative, finite ratios are reduced to lowest terms, and
    for a zero denominator the numerator is collapsed to its sign so that 0/0 is NaN and
    ±1/0 are the infinities.
    '''
    if denominator < 0:
        numerator, denominator = -numerator, -denominator
    if denominator > 1:
        divisor = gcd(numerator, denominator)
        if divisor > 1:
            numerator //= divisor
            denominator //= divisor
    elif denominator == 0:
        numerator = (numerator > 0) - (numerator < 0)
    return numerator, denominator


def trunc_div(numerator, denominator):
    '''Integer division rounding towards zero.  denominator must be positive.'''
    quotient = abs(numerator) // denominator
    return -quotient if numerator < 0 else quotient


#
# Fixed-width formats: the float and decimal bridges
#

class FloatFormat(NamedTuple):
    '''An IEEE-754 binary interchange format as stored in memory: a sign bit, a biased
    exponent field and a mantissa field without the integer bit.  Only instantiate through
    from_pair().

    window and window_keep bound the precision used when a Rational is reconstructed as a
    native float.  If the denominator has more than window bits, the remainder and
    denominator are shifted right so that window_keep bits remain.  This keeps the native
    division from overflowing at the cost of precision.
    '''

    exponent_bits: int
    mantissa_bits: int
    bias: int
    struct_format: str
    window: int
    window_keep: int

    @classmethod
    def from_pair(cls, exponent_bits, mantissa_bits, struct_format, window, window_keep):
        '''Construct from the exponent and mantissa field widths.'''
        bias = (1 << (exponent_bits - 1)) - 1
        return cls(exponent_bits, mantissa_bits, bias, struct_format, window, window_keep)

    @property
    def fmt_width(self):
        return 1 + self.exponent_bits + self.mantissa_bits

    @property
    def exponent_max(self):
        '''The exponent field value of infinities and NaNs.'''
        return (1 << self.exponent_bits) - 1

    @property
    def int_bit(self):
        '''The implicit integer bit of normal numbers.'''
        return 1 << self.mantissa_bits

    def pack(self, value):
        '''Pack a Python float as little-endian bytes of this format, rounding to nearest.
        Magnitudes too large for the format become an infinity of the same sign.'''
        packer = Struct(self.struct_format)
        try:
            return packer.pack(value)
        except OverflowError:
            return packer.pack(inf if value > 0 else -inf)

    def unpack(self, raw):
        '''Decode little-endian bytes of this format and return a FloatTuple.

        exponent is the biased exponent field, and mantissa does not include the integer bit.
        '''
        size = self.fmt_width // 8
        if len(raw) != size:
            raise ValueError(f'expected {size} bytes to unpack; got {len(raw)}')

        value = int.from_bytes(raw, 'little')
        mantissa = value & (self.int_bit - 1)
        value >>= self.mantissa_bits
        exponent = value & self.exponent_max
        sign = value != exponent

        return FloatTuple(sign, exponent, mantissa)

    def round(self, value):
        '''Return the Python float value rounded to this format.'''
        result, = Struct(self.struct_format).unpack(self.pack(value))
        return result

    def decompose(self, raw):
        '''Return the exact Rational value of the little-endian encoding raw.'''
        sign, exponent, mantissa = self.unpack(raw)

        if exponent == 0:
            # Zeroes and subnormals
            if mantissa == 0:
                return Zero
            numerator = mantissa
            denominator = 1 << (self.bias - 1 + self.mantissa_bits)
        elif exponent == self.exponent_max:
            if mantissa:
                return NaN
            return NegativeInfinity if sign else PositiveInfinity
        else:
            numerator = mantissa + self.int_bit
            denominator = 1
            exponent -= self.bias + self.mantissa_bits
            if exponent < 0:
                denominator <<= -exponent
            else:
                numerator <<= exponent

        return Rational(-numerator if sign else numerator, denominator)

    def to_rational(self, value):
        '''Return the exact Rational value of the Python float value in this format.'''
        if not isinstance(value, (float, int)):
            raise TypeError('to_rational requires a float')
        return self.decompose(self.pack(value))

    def from_rational(self, value, context=None):
        '''Return the Rational value as a Python float rounded to this format.

        NaN and the infinities convert to their float equivalents.  If the result is not
        exactly the value, Inexact is signalled.
        '''
        numerator, denominator = value
        if denominator == 0:
            return copysign(inf, numerator) if numerator else nan

        sign = numerator < 0
        quotient, remainder = divmod(abs(numerator), denominator)

        # log2(denominator) > window
        if denominator > 1 << self.window:
            shift = denominator.bit_length() - 1 - self.window_keep
            LOG.debug('rescaling %d-bit denominator by %d bits', denominator.bit_length(), shift)
            remainder >>= shift
            denominator >>= shift

        try:
            result = float(quotient)
        except OverflowError:
            result = inf
        result += float(remainder) / float(denominator)
        result = self.round(-result if sign else result)

        if self.to_rational(result) != value:
            result = Inexact((OP_TO_FLOAT, value, self), result).signal(context)
        return result


class DecimalFormat(NamedTuple):
    '''A scaled-decimal format: a sign, an unsigned integer coefficient and a power-of-ten
    scale, representing (-1)^sign * coefficient / 10^scale.

    The encoding is little-endian: the coefficient occupies the low coefficient_bits bits,
    followed by a 32-bit word holding the scale in bits 16 to 23 and the sign in bit 31.
    '''

    coefficient_bits: int
    max_scale: int

    @property
    def fmt_width(self):
        return self.coefficient_bits + 32

    @property
    def max_coefficient(self):
        return (1 << self.coefficient_bits) - 1

    def decimal_context(self):
        '''The decimal context used for arithmetic in this format.'''
        return DecimalContext(prec=self.max_scale)

    def pack(self, scaled):
        '''Encode a ScaledDecimal as little-endian bytes.'''
        sign, coefficient, scale = scaled
        if not 0 <= coefficient <= self.max_coefficient:
            raise ValueError(f'coefficient {coefficient:,d} out of range')
        if not 0 <= scale <= self.max_scale:
            raise ValueError(f'scale {scale} out of range')
        value = ((bool(sign) << 31) | (scale << 16)) << self.coefficient_bits
        return (value | coefficient).to_bytes(self.fmt_width // 8, 'little')

    def unpack(self, raw):
        '''Decode little-endian bytes and return a ScaledDecimal.'''
        size = self.fmt_width // 8
        if len(raw) != size:
            raise ValueError(f'expected {size} bytes to unpack; got {len(raw)}')

        value = int.from_bytes(raw, 'little')
        coefficient = value & self.max_coefficient
        flags = value >> self.coefficient_bits
        scale = (flags >> 16) & 0xff
        if scale > self.max_scale:
            raise ValueError(f'scale {scale} out of range')

        return ScaledDecimal(bool(flags >> 31), coefficient, scale)

    def to_rational(self, scaled):
        '''Return the exact Rational value of a ScaledDecimal.'''
        sign, coefficient, scale = scaled
        return Rational(-coefficient if sign else coefficient, 10 ** scale)

    def decompose(self, raw):
        '''Return the exact Rational value of the little-endian encoding raw.'''
        return self.to_rational(self.unpack(raw))

    def from_decimal(self, value, context=None):
        '''Return the finite Decimal value as a ScaledDecimal.  Digits beyond the maximum
        scale are truncated, signalling Inexact.  Overflow is signalled if the coefficient
        is too large.'''
        op_tuple = (OP_TO_DECIMAL, value, self)
        sign, digits, exponent = value.as_tuple()
        if not value.is_finite():
            result = ScaledDecimal(bool(sign), 0 if value.is_nan() else self.max_coefficient, 0)
            return Overflow(op_tuple, result).signal(context)

        coefficient = int(''.join(map(str, digits)))
        if exponent > 0:
            coefficient *= 10 ** exponent
            scale = 0
        else:
            scale = -exponent

        if coefficient > self.max_coefficient:
            result = ScaledDecimal(bool(sign), self.max_coefficient, 0)
            return Overflow(op_tuple, result).signal(context)
        if scale > self.max_scale:
            coefficient //= 10 ** (scale - self.max_scale)
            result = ScaledDecimal(bool(sign), coefficient, self.max_scale)
            return Inexact(op_tuple, result).signal(context)
        return ScaledDecimal(bool(sign), coefficient, scale)

    def from_rational(self, value, context=None):
        '''Return the Rational value as a Decimal with at most max_scale significant digits.

        Non-finite values, and values whose integer part needs more than coefficient_bits,
        signal Overflow.  If the result is not exactly the value, Inexact is signalled.
        '''
        op_tuple = (OP_TO_DECIMAL, value, self)
        numerator, denominator = value
        if denominator == 0:
            if numerator:
                result = Decimal('-Infinity') if numerator < 0 else Decimal('Infinity')
            else:
                result = Decimal('NaN')
            return Overflow(op_tuple, result).signal(context)

        sign = numerator < 0
        quotient, remainder = divmod(abs(numerator), denominator)
        if quotient > self.max_coefficient:
            result = Decimal(self.max_coefficient)
            return Overflow(op_tuple, -result if sign else result).signal(context)

        digits = len(str(denominator)) - 1
        if digits > self.max_scale:
            divisor = 10 ** (digits - self.max_scale + 1)
            LOG.debug('rescaling %d-digit denominator by 10^%d', digits + 1,
                      digits - self.max_scale + 1)
            remainder //= divisor
            denominator //= divisor

        with localcontext(self.decimal_context()):
            result = Decimal(quotient) + Decimal(remainder) / Decimal(denominator)
        if sign:
            result = result.copy_negate()

        if Rational.from_decimal(result) != value:
            result = Inexact(op_tuple, result).signal(context)
        return result


#
# The rational number type
#

class Rational(namedtuple('Rational', 'numerator denominator')):
    '''Internal Representation
       -----------------------

    A Rational is an immutable (numerator, denominator) pair of Python integers held in
    canonical form:

        - the denominator is never negative;
        - if the denominator exceeds 1, numerator and denominator are coprime;
        - if the denominator is 0, the numerator is -1, 0 or 1.

    The last case encodes the non-finite values: 0/0 is NaN, 1/0 is positive infinity and
    -1/0 is negative infinity.  Zero is always 0/1.

    Equality follows IEEE-754: a NaN compares unequal to everything, including itself.
    Ordering is total: NaN is less than every other value and equal only to NaN.  So
    sorted() works on lists containing NaNs, which sort first.
    '''

    __slots__ = ()

    _converters = {}

    def __new__(cls, numerator=0, denominator=1):
        '''Normalize and create a rational number numerator/denominator.'''
        if not isinstance(numerator, int):
            raise TypeError('numerator must be an integer')
        if not isinstance(denominator, int):
            raise TypeError('denominator must be an integer')
        return super().__new__(cls, *normalize(int(numerator), int(denominator)))

    @classmethod
    def _make(cls, iterable):
        '''Make a Rational from a (numerator, denominator) iterable.  _replace() goes through
        here too.'''
        return cls(*iterable)

    ##
    ## Non-computational operations
    ##

    def is_nan(self):
        '''Return True if this is a NaN.'''
        return self.denominator == 0 and self.numerator == 0

    def is_infinite(self):
        '''Return True if this is an infinity.'''
        return self.denominator == 0 and self.numerator != 0

    def is_positive_infinity(self):
        return self.denominator == 0 and self.numerator > 0

    def is_negative_infinity(self):
        return self.denominator == 0 and self.numerator < 0

    def is_finite(self):
        '''Return True if the value is neither a NaN nor an infinity.'''
        return self.denominator != 0

    def is_zero(self):
        return self.denominator != 0 and self.numerator == 0

    def is_normal(self):
        '''Return True if the value is finite and non-zero.'''
        return self.denominator != 0 and self.numerator != 0

    def is_subnormal(self):
        '''Always False.  Rationals have no subnormal range.'''
        return False

    def is_canonical(self):
        '''Return True for finite values.  NaN and the infinities are encodings rather than
        numbers.'''
        return self.denominator != 0

    def is_real(self):
        return True

    def is_integer(self):
        return self.denominator == 1

    def is_even_integer(self):
        return self.denominator == 1 and not self.numerator & 1

    def is_odd_integer(self):
        return self.denominator == 1 and bool(self.numerator & 1)

    def is_negative(self):
        '''Return True if the numerator is negative, including for negative infinity.'''
        return self.numerator < 0

    def is_positive(self):
        return self.numerator > 0

    def sign(self):
        '''Return -1, 0 or 1, the sign of the numerator.'''
        return (self.numerator > 0) - (self.numerator < 0)

    def as_integer_ratio(self):
        '''Return the (numerator, denominator) pair of a finite value.'''
        if self.denominator == 0:
            if self.numerator:
                raise OverflowError('cannot convert an infinity to an integer ratio')
            raise ValueError('cannot convert a NaN to an integer ratio')
        return self.numerator, self.denominator

    ##
    ## Construction from other types
    ##

    @classmethod
    def from_value(cls, value):
        '''Return a Rational equal to value.  Values of type int, float, Fraction, Decimal and
        complex are accepted, and passed on to from_int, from_float, from_fraction,
        from_decimal and from_complex respectively.'''
        if isinstance(value, Rational):
            return value
        converter = cls._converters.get(type(value))
        if not converter:
            raise TypeError(f'from_value cannot convert values of type {type(value)}')
        return converter(value)

    @classmethod
    def from_int(cls, value):
        if not isinstance(value, int):
            raise TypeError('from_int requires an integer')
        return cls(value)

    @classmethod
    def from_fraction(cls, value):
        if not isinstance(value, Fraction):
            raise TypeError('from_fraction requires a Fraction instance')
        return cls(value.numerator, value.denominator)

    @classmethod
    def from_float(cls, value):
        '''Return the exact value of a Python float (an IEEE double).'''
        return IEEEdouble.to_rational(value)

    @classmethod
    def from_half(cls, value):
        '''Return the exact value of value rounded to IEEE half precision.'''
        return IEEEhalf.to_rational(value)

    @classmethod
    def from_single(cls, value):
        '''Return the exact value of value rounded to IEEE single precision.'''
        return IEEEsingle.to_rational(value)

    @classmethod
    def from_double(cls, value):
        return IEEEdouble.to_rational(value)

    @classmethod
    def from_decimal(cls, value):
        '''Return the exact value of a Decimal.  Decimal NaNs and infinities convert to their
        Rational equivalents.'''
        if not isinstance(value, Decimal):
            raise TypeError('from_decimal requires a Decimal instance')
        sign, digits, exponent = value.as_tuple()
        if value.is_nan():
            return NaN
        if value.is_infinite():
            return NegativeInfinity if sign else PositiveInfinity

        numerator = int(''.join(map(str, digits)))
        if sign:
            numerator = -numerator
        if exponent >= 0:
            return cls(numerator * 10 ** exponent)
        return cls(numerator, 10 ** -exponent)

    @classmethod
    def from_scaled_decimal(cls, scaled):
        '''Return the exact value of a ScaledDecimal in the Decimal128 format.'''
        return Decimal128.to_rational(scaled)

    @classmethod
    def from_complex(cls, value, context=None):
        '''Return the real part of value.  Signals InvalidArgument if the imaginary part is
        non-zero.'''
        if not isinstance(value, complex):
            raise TypeError('from_complex requires a complex number')
        if value.imag:
            return InvalidArgument((OP_FROM_COMPLEX, value), NaN).signal(context)
        return cls.from_float(value.real)

    @classmethod
    def try_from_complex(cls, value):
        '''As for from_complex but return a Result and never signal or raise.'''
        if not isinstance(value, complex) or value.imag:
            return Result(False, NaN)
        return Result(True, cls.from_float(value.real))

    @classmethod
    def parse(cls, string, context=None):
        '''Convert a string to a Rational.  Signal ConversionSyntax if it matches none of the
        integer, fraction, scientific and mixed number grammars.'''
        pair = parse_pair(string)
        if pair is None:
            return ConversionSyntax((OP_PARSE, string), NaN).signal(context)
        return cls(*pair)

    @classmethod
    def try_parse(cls, string):
        '''Convert a string to a Rational without signalling.  Returns a Result whose value is
        NaN on failure.'''
        pair = parse_pair(string)
        if pair is None:
            LOG.debug('no rational grammar matches %r', string)
            return Result(False, NaN)
        return Result(True, cls(*pair))

    @classmethod
    def from_continued_fraction(cls, terms):
        '''Return the value of the continued fraction [a0; a1, a2, ...] given its terms.  An
        empty sequence of terms gives positive infinity.'''
        result = PositiveInfinity
        for term in reversed(list(terms)):
            result = result.inverse() + term
        return result

    ##
    ## Conversion to other types
    ##

    def _to_int(self, width, signed):
        '''Return a (result, exception class) pair.  The exception class is None if the
        conversion succeeded, otherwise result is the default result.'''
        if width is None:
            min_int = max_int = None
        elif not isinstance(width, int) or width <= 0:
            raise ValueError(f'width must be a positive integer: {width!r}')
        elif signed:
            min_int, max_int = -(1 << (width - 1)), (1 << (width - 1)) - 1
        else:
            min_int, max_int = 0, (1 << width) - 1

        numerator, denominator = self
        if denominator == 0:
            if numerator == 0 or width is None:
                return 0, DivisionByZero
            return (max_int if numerator > 0 else min_int), DivisionByZero

        result = trunc_div(numerator, denominator)
        if width is not None:
            result, unclamped_result = min(max(result, min_int), max_int), result
            if result != unclamped_result:
                return result, Overflow
        return result, None

    def to_int(self, width=None, signed=True, context=None):
        '''Return the value truncated towards zero.

        If width is not None the result must fit in a signed (two's complement) or unsigned
        integer of that many bits; if it does not Overflow is signalled with the clamped
        result.  NaNs and infinities signal DivisionByZero.
        '''
        result, exc_class = self._to_int(width, signed)
        if exc_class:
            return exc_class((OP_TO_INT, self, width, signed), result).signal(context)
        return result

    def try_to_int(self, width=None, signed=True):
        '''As for to_int but return a Result and never signal.'''
        result, exc_class = self._to_int(width, signed)
        if exc_class:
            return Result(False, 0)
        return Result(True, result)

    def to_fraction(self):
        return Fraction(*self.as_integer_ratio())

    def to_half(self, context=None):
        '''Return the value as a Python float rounded to IEEE half precision.'''
        return IEEEhalf.from_rational(self, context)

    def to_single(self, context=None):
        '''Return the value as a Python float rounded to IEEE single precision.'''
        return IEEEsingle.from_rational(self, context)

    def to_double(self, context=None):
        return IEEEdouble.from_rational(self, context)

    def to_decimal(self, context=None):
        '''Return the value as a Decimal in the Decimal128 format's precision.'''
        return Decimal128.from_rational(self, context)

    def to_scaled_decimal(self, context=None):
        return Decimal128.from_decimal(self.to_decimal(context), context)

    def to_complex(self, context=None):
        '''Return the value embedded on the real axis of the complex plane.'''
        return complex(self.to_double(context), 0.0)

    def continued_fraction(self, context=None):
        '''Return the terms of the continued fraction of this value as a restartable iterable.
        NaNs and infinities signal DivisionByZero and have no terms.'''
        if self.denominator == 0:
            DivisionByZero((OP_CONTINUED_FRACTION, self), None).signal(context)
        return ContinuedFraction(self)

    def to_string(self, text_format=None):
        '''Return the value formatted as text.  See the TextFormat docstring.'''
        return (text_format or FractionFormat).format(self)

    ##
    ## Computational operations
    ##

    def inverse(self):
        '''Return 1 / self.'''
        return Rational(self.denominator, self.numerator)

    def increment(self):
        '''Return self + 1.'''
        return Rational(self.numerator + self.denominator, self.denominator)

    def decrement(self):
        '''Return self - 1.'''
        return Rational(self.numerator - self.denominator, self.denominator)

    def truncate(self):
        '''Return the integral part of the value.  NaNs and infinities are unchanged.'''
        if self.denominator <= 1:
            return self
        return Rational(trunc_div(self.numerator, self.denominator))

    def floor(self):
        '''Return the largest integer not greater than the value.  NaNs and infinities are
        unchanged.'''
        if self.denominator <= 1:
            return self
        whole = abs(self.numerator) // self.denominator
        if self.numerator < 0:
            return Rational(-whole - 1)
        return Rational(whole)

    def ceiling(self):
        '''Return the smallest integer not less than the value.  NaNs and infinities are
        unchanged.'''
        if self.denominator <= 1:
            return self
        whole = abs(self.numerator) // self.denominator
        if self.numerator < 0:
            return Rational(-whole)
        return Rational(whole + 1)

    def round(self):
        '''Round to the nearest integer, with ties rounded up (towards positive infinity).'''
        return (self + Half).floor()

    def remainder(self, other):
        '''Return self - other * truncate(self / other).  The result has the sign of self.'''
        other = Rational.from_value(other)
        return self - other * (self / other).truncate()

    def modulo(self, other):
        '''Return self - other * floor(self / other).  The result has the sign of other.'''
        other = Rational.from_value(other)
        return self - other * (self / other).floor()

    def pow(self, exponent):
        '''Return self raised to the integer power exponent.  NaNs are returned unchanged,
        including for a zero exponent.'''
        if not isinstance(exponent, int):
            raise TypeError('exponent must be an integer')
        if self.is_nan() or exponent == 1:
            return self
        if exponent < 0:
            return self.inverse().pow(-exponent)
        if exponent == 0:
            return One
        return Rational(self.numerator ** exponent, self.denominator ** exponent)

    def log(self, base=None):
        '''Return the logarithm of the value as a Python float.  This is not exact.

        The natural logarithm is returned if base is None.  base can be a number or a
        Rational.
        '''
        numerator, denominator = self
        if numerator < 0 or self.is_nan():
            result = nan
        elif numerator == 0:
            result = -inf
        elif denominator == 0:
            result = inf
        else:
            result = log(numerator) - log(denominator)

        if base is None:
            return result
        if isinstance(base, Rational):
            return result / base.log()
        return result / log(base)

    def compare(self, other, context=None):
        '''Return -1, 0 or 1 as self is less than, equal to, or greater than other in the total
        order where NaN is below negative infinity and equal to itself.

        Signals InvalidComparison if other cannot be converted to a Rational.
        '''
        rhs = _coerce(other)
        if rhs is None:
            return InvalidComparison((OP_COMPARE, self, other), None).signal(context)
        return self._compare(rhs)

    def _compare(self, rhs):
        a, b = self
        c, d = rhs
        if b == 0 and a == 0:
            return 0 if rhs.is_nan() else -1
        if d == 0 and c == 0:
            return 1
        if b == 0 and d == 0:
            # Both are infinities
            diff = a - c
        else:
            diff = a * d - c * b
        return (diff > 0) - (diff < 0)

    def min(self, other):
        '''Return the lesser of self and other in the total order.'''
        other = Rational.from_value(other)
        return other if other._compare(self) < 0 else self

    def max(self, other):
        '''Return the greater of self and other in the total order.'''
        other = Rational.from_value(other)
        return other if self._compare(other) < 0 else self

    def _max_min_mag(self, flags, other):
        '''Return the operand of greater (flags has MAX) or lesser magnitude, resolving equal
        magnitudes by value.  A NaN operand gives NaN unless flags has NUM, in which case the
        other operand is returned.'''
        other = Rational.from_value(other)
        if self.is_nan() or other.is_nan():
            if flags & MinMaxFlags.NUM:
                return other if self.is_nan() else self
            return NaN

        comp = abs(self)._compare(abs(other)) or self._compare(other)
        if comp >= 0:
            return self if flags & MinMaxFlags.MAX else other
        return other if flags & MinMaxFlags.MAX else self

    def max_mag(self, other):
        return self._max_min_mag(MinMaxFlags.MAX, other)

    def max_mag_num(self, other):
        return self._max_min_mag(MinMaxFlags.MAX | MinMaxFlags.NUM, other)

    def min_mag(self, other):
        return self._max_min_mag(MinMaxFlags.MIN, other)

    def min_mag_num(self, other):
        return self._max_min_mag(MinMaxFlags.MIN | MinMaxFlags.NUM, other)

    def __repr__(self):
        return f'Rational({self.numerator}, {self.denominator})'

    def __str__(self):
        return self.to_string()

    def __format__(self, spec):
        return TextFormat.from_spec(spec).format(self)

    def __abs__(self):
        return Rational(abs(self.numerator), self.denominator)

    def __neg__(self):
        return Rational(-self.numerator, self.denominator)

    def __pos__(self):
        return self

    def __eq__(self, other):
        if isinstance(other, complex):
            if other.imag:
                return False
            other = other.real
        if isinstance(other, tuple) and not isinstance(other, Rational):
            return False
        other = _coerce(other)
        if other is None:
            return NotImplemented
        # NaN is unequal to everything.  Otherwise canonical forms are equal.
        return (not self.is_nan() and self.numerator == other.numerator
                and self.denominator == other.denominator)

    def __ne__(self, other):
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    def __lt__(self, other):
        other = _order_operand(other, '<')
        if other is None:
            return NotImplemented
        return self._compare(other) < 0

    def __le__(self, other):
        other = _order_operand(other, '<=')
        if other is None:
            return NotImplemented
        return self._compare(other) <= 0

    def __ge__(self, other):
        other = _order_operand(other, '>=')
        if other is None:
            return NotImplemented
        return self._compare(other) >= 0

    def __gt__(self, other):
        other = _order_operand(other, '>')
        if other is None:
            return NotImplemented
        return self._compare(other) > 0

    def __bool__(self):
        return self.numerator != 0 or self.denominator == 0

    def __int__(self):
        return self.to_int()

    def __float__(self):
        return self.to_double()

    def __complex__(self):
        return self.to_complex()

    def __trunc__(self):
        return self.truncate().to_int()

    def __floor__(self):
        return self.floor().to_int()

    def __ceil__(self):
        return self.ceiling().to_int()

    def __round__(self, ndigits=None):
        '''If ndigits is None, round to an integer with ties rounded up.  Otherwise round to
        ndigits decimal places and the result is a Rational.
        '''
        if ndigits is None:
            return self.round().to_int()
        if not isinstance(ndigits, int):
            raise TypeError('ndigits must be an integer')
        scale = Rational(10).pow(ndigits)
        return (self * scale).round() / scale

    def __add__(self, other):
        other = _coerce(other)
        if other is None:
            return NotImplemented
        a, b = self
        c, d = other
        return Rational(a * d + c * b, b * d)

    def __sub__(self, other):
        other = _coerce(other)
        if other is None:
            return NotImplemented
        a, b = self
        c, d = other
        return Rational(a * d - c * b, b * d)

    def __mul__(self, other):
        other = _coerce(other)
        if other is None:
            return NotImplemented
        return Rational(self.numerator * other.numerator, self.denominator * other.denominator)

    def __truediv__(self, other):
        other = _coerce(other)
        if other is None:
            return NotImplemented
        return Rational(self.numerator * other.denominator, self.denominator * other.numerator)

    def __mod__(self, other):
        other = _coerce(other)
        if other is None:
            return NotImplemented
        return self.remainder(other)

    def __pow__(self, exponent):
        if not isinstance(exponent, int):
            return NotImplemented
        return self.pow(exponent)

    def __radd__(self, other):
        return self.__add__(other)

    def __rsub__(self, other):
        other = _coerce(other)
        if other is None:
            return NotImplemented
        return other - self

    def __rmul__(self, other):
        return self.__mul__(other)

    def __rtruediv__(self, other):
        other = _coerce(other)
        if other is None:
            return NotImplemented
        return other / self

    def __rmod__(self, other):
        other = _coerce(other)
        if other is None:
            return NotImplemented
        return other.remainder(self)

    def __hash__(self):
        '''Python hash.  Must hash equally to other types with the same value.'''
        numerator, denominator = self
        if denominator == 0:
            # Follow behaviour of floats for non-finite values
            if numerator:
                return -314159 if numerator < 0 else 314159
            return 0
        return hash(Fraction(numerator, denominator))


class ContinuedFraction:
    '''The terms [a0; a1, a2, ...] of the continued fraction of a Rational.

    Each iteration restarts from the value: the truncated integer part is yielded and
    subtracted, and the remainder inverted, until the remainder is zero.  Zero has the
    single term 0.  Non-finite values have no terms.
    '''

    __slots__ = ('value', )

    def __init__(self, value):
        self.value = value

    def __iter__(self):
        value = self.value
        if not value.is_finite():
            return
        while True:
            term = value.truncate()
            yield term.numerator
            value -= term
            if value.is_zero():
                return
            value = value.inverse()

    def __repr__(self):
        return f'ContinuedFraction({self.value!r})'


#
# Useful internal helper routines
#

def _coerce(value):
    '''Return value as a Rational, or None if it is not of a type that converts implicitly.'''
    if isinstance(value, Rational):
        return value
    converter = _operand_converters.get(type(value))
    if converter:
        return converter(value)
    return None


def _order_operand(value, operator):
    '''As for _coerce, but raise TypeError for a plain tuple, which tuple's own ordering
    would otherwise accept.'''
    result = _coerce(value)
    if result is None and isinstance(value, tuple):
        raise TypeError(f"'{operator}' not supported between instances of 'Rational' "
                        f"and '{type(value).__name__}'")
    return result


def parse_pair(string):
    '''Return the (numerator, denominator) pair that string represents, or None if it
    matches none of the grammars.  The grammars are tried in order: integer, fraction,
    scientific, and mixed number.  Surrounding whitespace is ignored.
    '''
    if not isinstance(string, str):
        return None
    string = string.strip()

    match = INTEGER_REGEX.match(string)
    if match:
        return int(match.group(1)), 1

    match = FRACTION_REGEX.match(string)
    if match:
        return int(match.group(1)), int(match.group(2))

    # The digits either side of the point are read as a single integer that the exponent
    # then scales.
    match = SCIENTIFIC_REGEX.match(string)
    if match:
        sign, integer, fraction, exponent = match.groups()
        numerator = int(integer + (fraction or ''))
        if sign == '-':
            numerator = -numerator
        exponent = int(exponent)
        if exponent > 0:
            return numerator * 10 ** exponent, 1
        return numerator, 10 ** -exponent

    match = MIXED_REGEX.match(string)
    if match:
        sign, whole, numerator, denominator = match.groups()
        denominator = int(denominator)
        numerator = int(whole) * denominator + int(numerator)
        return (-numerator if sign == '-' else numerator), denominator

    return None


#
# Exported functions
#

DefaultContext = Context()
DefaultContext.set_handler((Invalid, DivisionByZero, Overflow), HandlerKind.RAISE)
tls = threading.local()


def get_context():
    '''Return the current thread's context.  A thread starts with a copy of DefaultContext.'''
    context = getattr(tls, 'context', None)
    if context is None:
        context = tls.context = DefaultContext.copy()
    return context


def set_context(context):
    '''Make context, not a copy of it, the current thread's context.'''
    tls.context = context


class LocalContext:
    '''Context manager giving a with-block its own copy of a context.

    On entry the thread's context is replaced with a copy of the given context, or of the
    current one if none is given, and the copy is returned.  The previous context comes
    back on exit, so flags raised inside the block do not leak out of it.
    '''

    def __init__(self, context=None):
        self.context = context
        self.saved = None

    def __enter__(self):
        self.saved = get_context()
        context = (self.context or self.saved).copy()
        set_context(context)
        return context

    def __exit__(self, etype, value, traceback):
        set_context(self.saved)


local_context = LocalContext

#
# Constants
#

IEEEhalf = FloatFormat.from_pair(5, 10, '<e', 25, 12)
IEEEsingle = FloatFormat.from_pair(8, 23, '<f', 127, 64)
IEEEdouble = FloatFormat.from_pair(11, 52, '<d', 1023, 512)

# 96-bit coefficient with up to 28 decimal places
Decimal128 = DecimalFormat(96, 28)

Zero = Rational(0)
One = Rational(1)
MinusOne = Rational(-1)
Half = Rational(1, 2)
MinusHalf = Rational(-1, 2)
NaN = Rational(0, 0)
PositiveInfinity = Rational(1, 0)
NegativeInfinity = Rational(-1, 0)

_operand_converters = {
    int: Rational.from_int,
    bool: Rational.from_int,
    float: Rational.from_float,
    Fraction: Rational.from_fraction,
    Decimal: Rational.from_decimal,
}

Rational._converters.update(_operand_converters)
Rational._converters[complex] = Rational.from_complex

FORMAT_SPEC_REGEX = re.compile('([FW]|D([0-9]*))$', re.ASCII)
INTEGER_REGEX = re.compile('([-+]?[0-9]+)$', re.ASCII)
FRACTION_REGEX = re.compile('([-+]?[0-9]+)/([0-9]+)$', re.ASCII)
SCIENTIFIC_REGEX = re.compile(
    # sign[opt] dec-integer
    '([-+]?)([0-9]+)'
    # (.fraction[opt])[opt]
    '(?:\\.([0-9]*))?'
    # e sign[opt] dec-exponent
    '[eE]([-+]?[0-9]+)$',
    re.ASCII
)
MIXED_REGEX = re.compile(
    # sign[opt] dec-integer whitespace numerator/denominator
    '([-+]?)([0-9]+)\\s+([0-9]+)/([0-9]+)$',
    re.ASCII
)
