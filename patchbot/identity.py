"""
PatchBot identity constants.
"""

__version__ = "0.4.0"
__codename__ = "PATCHBOT"
__tagline__ = "Search. Replace. Ship."

BANNER = r"""
  ___      _      _    ___      _
 | _ \__ _| |_ __| |_ | _ ) ___| |_
 |  _/ _` |  _/ _| ' \| _ \/ _ \  _|
 |_| \__,_|\__\__|_||_|___/\___/\__|
"""
