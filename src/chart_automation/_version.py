# SPDX-License-Identifier: MIT
# SPDX-FileCopyrightText: The chart-automation contributors
__version__ = "0.4.0"
