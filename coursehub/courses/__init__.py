"""Course content module.

Courses own ordered chapters; chapters own ordered lectures. Lecture URLs
are masked for viewers who are not enrolled unless the lecture is a free
preview.
"""
