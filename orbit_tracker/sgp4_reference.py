"""
Reference SGP4 Implementation

Native implementation of the near-Earth SGP4 analytic propagation model,
following the algorithm described in Vallado et al. (2006) "Revisiting
Spacetrack Report #3" (AIAA 2006-6753).

Model content:
- Un-Kozai of the TLE mean motion (J2 secular correction)
- Secular rates of mean anomaly, argument of perigee and node from J2 and J4
- Atmospheric drag through B* with the power-density function (C1..C5, D2..D4)
- Long-period periodics from J3
- Kepler solve for the eccentric longitude
- Short-period periodics from J2

Deep-space element sets (period >= 225 minutes) need the lunar-solar and
resonance terms of SDP4 and are rejected with ``invalid-elements``; the
library engine in propagator.py handles them.

Uses WGS-72 gravitational constants as specified in AAS 06-675. Positions
are returned in km and velocities in km/s in the TEME frame.

References:
- Vallado, D. A., et al. (2006). "Revisiting Spacetrack Report #3." AIAA 2006-6753
- Hoots, F. R., & Roehrich, R. L. (1980). "Spacetrack Report No. 3"
"""

import math
from typing import Tuple

import structlog

from config import (
    EARTH_RADIUS_KM,
    GRAVITATIONAL_PARAMETER,
    J2,
    J3,
    J4,
    DEEP_SPACE_PERIOD_MIN,
)
from orbit_tracker.exceptions import PropagationError, PropagationFailure
from orbit_tracker.models import OrbitalElementSet

logger = structlog.get_logger(__name__)

DEG2RAD = math.pi / 180.0
TWOPI = 2.0 * math.pi
XPDOTP = 1440.0 / TWOPI  # rev/day to rad/min
X2O3 = 2.0 / 3.0

XKE = 60.0 / math.sqrt(EARTH_RADIUS_KM ** 3 / GRAVITATIONAL_PARAMETER)
J3OJ2 = J3 / J2
VKMPERSEC = EARTH_RADIUS_KM * XKE / 60.0

TEMP4 = 1.5e-12
KEPLER_TOLERANCE = 1.0e-12
KEPLER_MAX_ITER = 10


class NearEarthSGP4:
    """
    SGP4 propagator for one near-Earth element set.

    Initialisation derives the constant model coefficients once; propagate()
    is a pure function of minutes since epoch.
    """

    def __init__(self, elements: OrbitalElementSet):
        self.catalog_number = elements.catalog_number
        self.bstar = elements.bstar
        self.ecco = elements.eccentricity
        self.inclo = elements.inclination_deg * DEG2RAD
        self.nodeo = elements.raan_deg * DEG2RAD
        self.argpo = elements.arg_perigee_deg * DEG2RAD
        self.mo = elements.mean_anomaly_deg * DEG2RAD
        self.no_kozai = elements.mean_motion / XPDOTP

        if self.no_kozai <= 0.0:
            self._fail(PropagationFailure.INVALID_ELEMENTS, "mean motion must be positive")
        if not 0.0 <= self.ecco < 1.0:
            self._fail(PropagationFailure.INVALID_ELEMENTS,
                       f"eccentricity {self.ecco} outside [0, 1)")

        self._sgp4init()

    def _fail(self, reason: PropagationFailure, message: str, tsince: float = None):
        raise PropagationError(reason, message, catalog_number=self.catalog_number,
                               tsince_minutes=tsince)

    def _sgp4init(self):
        ecco = self.ecco
        inclo = self.inclo

        ss = 78.0 / EARTH_RADIUS_KM + 1.0
        qzms2t = ((120.0 - 78.0) / EARTH_RADIUS_KM) ** 4

        # initl: recover the un-Kozai mean motion and semi-major axis
        eccsq = ecco * ecco
        omeosq = 1.0 - eccsq
        rteosq = math.sqrt(omeosq)
        cosio = math.cos(inclo)
        cosio2 = cosio * cosio

        ak = (XKE / self.no_kozai) ** X2O3
        d1 = 0.75 * J2 * (3.0 * cosio2 - 1.0) / (rteosq * omeosq)
        del_ = d1 / (ak * ak)
        adel = ak * (1.0 - del_ * del_ - del_ * (1.0 / 3.0 + 134.0 * del_ * del_ / 81.0))
        del_ = d1 / (adel * adel)
        self.no_unkozai = self.no_kozai / (1.0 + del_)

        ao = (XKE / self.no_unkozai) ** X2O3
        sinio = math.sin(inclo)
        po = ao * omeosq
        con42 = 1.0 - 5.0 * cosio2
        self.con41 = -con42 - cosio2 - cosio2
        posq = po * po
        rp = ao * (1.0 - ecco)

        if TWOPI / self.no_unkozai >= DEEP_SPACE_PERIOD_MIN:
            self._fail(PropagationFailure.INVALID_ELEMENTS,
                       "deep-space element set; use the sgp4 library engine")

        if rp < 1.0:
            self._fail(PropagationFailure.DECAYED,
                       f"perigee radius {rp * EARTH_RADIUS_KM:.1f} km is below the surface")

        # Drag power-density parameters, lowered for perigee below 156 km
        self.isimp = rp < (220.0 / EARTH_RADIUS_KM + 1.0)
        sfour = ss
        qzms24 = qzms2t
        perige = (rp - 1.0) * EARTH_RADIUS_KM
        if perige < 156.0:
            sfour = perige - 78.0
            if perige < 98.0:
                sfour = 20.0
            qzms24 = ((120.0 - sfour) / EARTH_RADIUS_KM) ** 4
            sfour = sfour / EARTH_RADIUS_KM + 1.0

        pinvsq = 1.0 / posq
        tsi = 1.0 / (ao - sfour)
        self.eta = ao * ecco * tsi
        etasq = self.eta * self.eta
        eeta = ecco * self.eta
        psisq = abs(1.0 - etasq)
        coef = qzms24 * tsi ** 4
        coef1 = coef / psisq ** 3.5
        cc2 = coef1 * self.no_unkozai * (
            ao * (1.0 + 1.5 * etasq + eeta * (4.0 + etasq))
            + 0.375 * J2 * tsi / psisq * self.con41 * (8.0 + 3.0 * etasq * (8.0 + etasq))
        )
        self.cc1 = self.bstar * cc2
        cc3 = 0.0
        if ecco > 1.0e-4:
            cc3 = -2.0 * coef * tsi * J3OJ2 * self.no_unkozai * sinio / ecco
        self.x1mth2 = 1.0 - cosio2
        self.cc4 = 2.0 * self.no_unkozai * coef1 * ao * omeosq * (
            self.eta * (2.0 + 0.5 * etasq) + ecco * (0.5 + 2.0 * etasq)
            - J2 * tsi / (ao * psisq) * (
                -3.0 * self.con41 * (1.0 - 2.0 * eeta + etasq * (1.5 - 0.5 * eeta))
                + 0.75 * self.x1mth2 * (2.0 * etasq - eeta * (1.0 + etasq)) * math.cos(2.0 * self.argpo)
            )
        )
        self.cc5 = 2.0 * coef1 * ao * omeosq * (1.0 + 2.75 * (etasq + eeta) + eeta * etasq)

        # Secular rates from J2 and J4
        cosio4 = cosio2 * cosio2
        temp1 = 1.5 * J2 * pinvsq * self.no_unkozai
        temp2 = 0.5 * temp1 * J2 * pinvsq
        temp3 = -0.46875 * J4 * pinvsq * pinvsq * self.no_unkozai
        self.mdot = (self.no_unkozai + 0.5 * temp1 * rteosq * self.con41
                     + 0.0625 * temp2 * rteosq * (13.0 - 78.0 * cosio2 + 137.0 * cosio4))
        self.argpdot = (-0.5 * temp1 * con42
                        + 0.0625 * temp2 * (7.0 - 114.0 * cosio2 + 395.0 * cosio4)
                        + temp3 * (3.0 - 36.0 * cosio2 + 49.0 * cosio4))
        xhdot1 = -temp1 * cosio
        self.nodedot = xhdot1 + (0.5 * temp2 * (4.0 - 19.0 * cosio2)
                                 + 2.0 * temp3 * (3.0 - 7.0 * cosio2)) * cosio

        self.omgcof = self.bstar * cc3 * math.cos(self.argpo)
        self.xmcof = 0.0
        if ecco > 1.0e-4:
            self.xmcof = -X2O3 * coef * self.bstar / eeta
        self.nodecf = 3.5 * omeosq * xhdot1 * self.cc1
        self.t2cof = 1.5 * self.cc1

        # Long-period periodic coefficients from J3
        if abs(cosio + 1.0) > TEMP4:
            self.xlcof = -0.25 * J3OJ2 * sinio * (3.0 + 5.0 * cosio) / (1.0 + cosio)
        else:
            self.xlcof = -0.25 * J3OJ2 * sinio * (3.0 + 5.0 * cosio) / TEMP4
        self.aycof = -0.5 * J3OJ2 * sinio
        self.delmo = (1.0 + self.eta * math.cos(self.mo)) ** 3
        self.sinmao = math.sin(self.mo)
        self.x7thm1 = 7.0 * cosio2 - 1.0

        # Higher-order drag terms are skipped for very low perigee
        self.d2 = self.d3 = self.d4 = 0.0
        self.t3cof = self.t4cof = self.t5cof = 0.0
        if not self.isimp:
            cc1sq = self.cc1 * self.cc1
            self.d2 = 4.0 * ao * tsi * cc1sq
            temp = self.d2 * tsi * self.cc1 / 3.0
            self.d3 = (17.0 * ao + sfour) * temp
            self.d4 = 0.5 * temp * ao * tsi * (221.0 * ao + 31.0 * sfour) * self.cc1
            self.t3cof = self.d2 + 2.0 * cc1sq
            self.t4cof = 0.25 * (3.0 * self.d3 + self.cc1 * (12.0 * self.d2 + 10.0 * cc1sq))
            self.t5cof = 0.2 * (3.0 * self.d4 + 12.0 * self.cc1 * self.d3
                                + 6.0 * self.d2 * self.d2 + 15.0 * cc1sq * (2.0 * self.d2 + cc1sq))

        self.cosio = cosio
        self.sinio = sinio

    def propagate(self, tsince: float) -> Tuple[Tuple[float, float, float], Tuple[float, float, float]]:
        """
        Propagate to ``tsince`` minutes from epoch.

        Returns:
            (position_km, velocity_kms) in TEME

        Raises:
            PropagationError: decayed orbit or degenerate mean elements
        """
        t = tsince

        # Secular gravity and drag
        xmdf = self.mo + self.mdot * t
        argpdf = self.argpo + self.argpdot * t
        nodedf = self.nodeo + self.nodedot * t
        argpm = argpdf
        mm = xmdf
        t2 = t * t
        nodem = nodedf + self.nodecf * t2
        tempa = 1.0 - self.cc1 * t
        tempe = self.bstar * self.cc4 * t
        templ = self.t2cof * t2

        if not self.isimp:
            delomg = self.omgcof * t
            delmtemp = 1.0 + self.eta * math.cos(xmdf)
            delm = self.xmcof * (delmtemp ** 3 - self.delmo)
            temp = delomg + delm
            mm = xmdf + temp
            argpm = argpdf - temp
            t3 = t2 * t
            t4 = t3 * t
            tempa = tempa - self.d2 * t2 - self.d3 * t3 - self.d4 * t4
            tempe = tempe + self.bstar * self.cc5 * (math.sin(mm) - self.sinmao)
            templ = templ + self.t3cof * t3 + t4 * (self.t4cof + t * self.t5cof)

        if tempa <= 0.0:
            self._fail(PropagationFailure.DECAYED,
                       f"drag term collapsed at t={t:.1f} min", tsince)

        am = (XKE / self.no_unkozai) ** X2O3 * tempa * tempa
        nm = XKE / am ** 1.5
        em = self.ecco - tempe

        if em >= 1.0 or em < -0.001:
            self._fail(PropagationFailure.NUMERICAL_DEGENERACY,
                       f"mean eccentricity {em:.6f} out of range at t={t:.1f} min", tsince)
        em = max(em, 1.0e-6)

        mm = mm + self.no_unkozai * templ
        xlm = mm + argpm + nodem

        nodem = math.fmod(nodem, TWOPI)
        argpm = math.fmod(argpm, TWOPI)
        xlm = math.fmod(xlm, TWOPI)
        mm = math.fmod(xlm - argpm - nodem, TWOPI)

        # Long-period periodics
        axnl = em * math.cos(argpm)
        temp = 1.0 / (am * (1.0 - em * em))
        aynl = em * math.sin(argpm) + temp * self.aycof
        xl = mm + argpm + nodem + temp * self.xlcof * axnl

        # Kepler's equation for the eccentric longitude
        u = math.fmod(xl - nodem, TWOPI)
        eo1 = u
        tem5 = 9999.9
        ktr = 1
        sineo1 = coseo1 = 0.0
        while abs(tem5) >= KEPLER_TOLERANCE and ktr <= KEPLER_MAX_ITER:
            sineo1 = math.sin(eo1)
            coseo1 = math.cos(eo1)
            tem5 = 1.0 - coseo1 * axnl - sineo1 * aynl
            tem5 = (u - aynl * coseo1 + axnl * sineo1 - eo1) / tem5
            if abs(tem5) >= 0.95:
                tem5 = 0.95 if tem5 > 0.0 else -0.95
            eo1 = eo1 + tem5
            ktr += 1

        # Short-period preliminary quantities
        ecose = axnl * coseo1 + aynl * sineo1
        esine = axnl * sineo1 - aynl * coseo1
        el2 = axnl * axnl + aynl * aynl
        pl = am * (1.0 - el2)
        if pl < 0.0:
            self._fail(PropagationFailure.NUMERICAL_DEGENERACY,
                       f"semi-latus rectum {pl:.6f} is negative at t={t:.1f} min", tsince)

        rl = am * (1.0 - ecose)
        rdotl = math.sqrt(am) * esine / rl
        rvdotl = math.sqrt(pl) / rl
        betal = math.sqrt(1.0 - el2)
        temp = esine / (1.0 + betal)
        sinu = am / rl * (sineo1 - aynl - axnl * temp)
        cosu = am / rl * (coseo1 - axnl + aynl * temp)
        su = math.atan2(sinu, cosu)
        sin2u = (cosu + cosu) * sinu
        cos2u = 1.0 - 2.0 * sinu * sinu
        temp = 1.0 / pl
        temp1 = 0.5 * J2 * temp
        temp2 = temp1 * temp

        # Short-period periodics
        mrt = rl * (1.0 - 1.5 * temp2 * betal * self.con41) + 0.5 * temp1 * self.x1mth2 * cos2u
        su = su - 0.25 * temp2 * self.x7thm1 * sin2u
        xnode = nodem + 1.5 * temp2 * self.cosio * sin2u
        xinc = self.inclo + 1.5 * temp2 * self.cosio * self.sinio * cos2u
        mvt = rdotl - nm * temp1 * self.x1mth2 * sin2u / XKE
        rvdot = rvdotl + nm * temp1 * (self.x1mth2 * cos2u + 1.5 * self.con41) / XKE

        # Orientation vectors
        sinsu = math.sin(su)
        cossu = math.cos(su)
        snod = math.sin(xnode)
        cnod = math.cos(xnode)
        sini = math.sin(xinc)
        cosi = math.cos(xinc)
        xmx = -snod * cosi
        xmy = cnod * cosi
        ux = xmx * sinsu + cnod * cossu
        uy = xmy * sinsu + snod * cossu
        uz = sini * sinsu
        vx = xmx * cossu - cnod * sinsu
        vy = xmy * cossu - snod * sinsu
        vz = sini * cossu

        if mrt < 1.0:
            self._fail(PropagationFailure.DECAYED,
                       f"radius {mrt * EARTH_RADIUS_KM:.1f} km is below the surface at t={t:.1f} min",
                       tsince)

        r = (mrt * ux * EARTH_RADIUS_KM, mrt * uy * EARTH_RADIUS_KM, mrt * uz * EARTH_RADIUS_KM)
        v = ((mvt * ux + rvdot * vx) * VKMPERSEC,
             (mvt * uy + rvdot * vy) * VKMPERSEC,
             (mvt * uz + rvdot * vz) * VKMPERSEC)
        return r, v
