# *****************************COPYRIGHT*******************************
# (C) Crown copyright Met Office. All rights reserved.
# For further details please refer to the file LICENSE
# which you should have received as part of this distribution.
# *****************************COPYRIGHT*******************************
"""
Style conformance checking for free-form Fortran source.
"""

# Declare version
VERSION = "1.0.0"
