import pytest

FOO_DIFF = """\
diff --git a/Foo.cs b/Foo.cs
index 1111111..2222222 100644
--- a/Foo.cs
+++ b/Foo.cs
@@ -40,3 +40,4 @@ public class Foo
     var a = 1;
     var b = 2;
+    _log.Info(secret);
     return a + b;
"""

MULTI_DIFF = """\
diff --git a/src/app.py b/src/app.py
index 3333333..4444444 100644
--- a/src/app.py
+++ b/src/app.py
@@ -10,4 +10,4 @@ def main():
 a
-b
+B
+C
 d
-e
@@ -30 +30,2 @@ def helper():
 x
+y
diff --git a/README.md b/README.md
index 5555555..6666666 100644
--- a/README.md
+++ b/README.md
@@ -1,0 +2,1 @@
+hello
"""


@pytest.fixture
def foo_diff() -> str:
    return FOO_DIFF


@pytest.fixture
def multi_diff() -> str:
    return MULTI_DIFF


@pytest.fixture
def foo_reply() -> str:
    return (
        "FILE: Foo.cs\n"
        "LINE: 42\n"
        "SEVERITY: High\n"
        "ISSUE: Logs a secret\n"
        "FIXEDCODE: // removed\n"
        "RULE: Security\n"
        "---\n"
    )
