import json
import os
import shutil
import tempfile
import unittest
from unittest.mock import patch

from buildforge import manifest
from buildforge import script_builder as sb
from buildforge.config import BuildConfiguration
from buildforge.errors import InvalidPropertyError, NoBuildStepError, UnsupportedVersionError
from buildforge.installer import PlatformInstaller
from buildforge.platforms.base import BuildContext
from buildforge.platforms.node import (
    NodePlatform,
    PackageJson,
    get_output_dir_path,
    get_startup_file_name,
)
from buildforge.repository import SourceRepo
from buildforge.utils.static_site import is_hugo_app


class NodePlatformTestCase(unittest.TestCase):

    def setUp(self):
        self.source_dir = tempfile.mkdtemp()
        self.tools_dir = tempfile.mkdtemp()
        self.platform = NodePlatform(PlatformInstaller(tools_dir=self.tools_dir))
        self.repo = SourceRepo(self.source_dir)

    def tearDown(self):
        shutil.rmtree(self.source_dir)
        shutil.rmtree(self.tools_dir)

    def write(self, path, content=""):
        full = os.path.join(self.source_dir, path)
        os.makedirs(os.path.dirname(full), exist_ok=True)
        with open(full, "w") as f:
            f.write(content if isinstance(content, str) else json.dumps(content))

    def config(self, **kwargs):
        kwargs.setdefault("source_dir", self.source_dir)
        kwargs.setdefault("tools_dir", self.tools_dir)
        return BuildConfiguration(**kwargs)

    def context(self, **kwargs):
        conf = self.config(**kwargs)
        context = BuildContext(repo=self.repo, config=conf)
        detection = self.platform.detect(self.repo, conf)
        self.platform.set_version(context, self.platform.resolve_version(self.repo, conf, detection))
        return context

    def lines(self, snippet):
        return [line for step in snippet.steps for line in step.lines]


class TestNodeDetection(NodePlatformTestCase):

    def test_not_applicable_for_empty_repo(self):
        detection = self.platform.detect(self.repo)
        self.assertFalse(detection.applies)
        self.assertEqual(detection.platform, "nodejs")

    def test_package_json_with_engines(self):
        self.write("package.json", {"engines": {"node": ">=18 <20"}})
        detection = self.platform.detect(self.repo)
        self.assertTrue(detection.applies)
        self.assertEqual(detection.version, ">=18 <20")
        self.assertEqual(detection.hints["package_manager"], "npm")

    def test_lock_file_and_start_file_detection(self):
        self.write("yarn.lock")
        detection = self.platform.detect(self.repo)
        self.assertTrue(detection.applies)
        self.assertEqual(detection.hints["package_manager"], "yarn")
        os.remove(os.path.join(self.source_dir, "yarn.lock"))
        self.write("server.js", "require('http')")
        self.assertTrue(self.platform.detect(self.repo).applies)

    def test_hugo_site(self):
        self.write("config.toml", 'title = "blog"\n')
        self.assertFalse(is_hugo_app(self.repo))
        os.makedirs(os.path.join(self.source_dir, "content"))
        self.assertTrue(is_hugo_app(self.repo))
        detection = self.platform.detect(self.repo)
        self.assertTrue(detection.applies)
        self.assertEqual(detection.hints["package_manager"], "hugo")

    def test_hugo_base_url(self):
        self.write("config.yaml", "baseURL: https://example.com/\n")
        self.assertTrue(is_hugo_app(self.repo))

    @patch("buildforge.platforms.node.logger")
    def test_malformed_package_json_is_absent(self, mock_logger):
        self.write("package.json", "{ not json")
        detection = self.platform.detect(self.repo)
        self.assertTrue(detection.applies)
        self.assertIsNone(detection.version)
        mock_logger.warning.assert_called()

    def test_detection_is_idempotent(self):
        self.write("package.json", {"engines": {"node": "18"}})
        self.assertEqual(self.platform.detect(self.repo), self.platform.detect(self.repo))


class TestNodeVersionResolution(NodePlatformTestCase):

    def resolve(self, **kwargs):
        conf = self.config(**kwargs)
        return self.platform.resolve_version(self.repo, conf, self.platform.detect(self.repo, conf))

    def test_default(self):
        self.write("package.json", {})
        resolved = self.resolve()
        self.assertEqual((resolved.runtime_version, resolved.toolchain_version), ("20.17.0", "20.17.0"))

    def test_engines_range(self):
        self.write("package.json", {"engines": {"node": "^16"}})
        self.assertEqual(self.resolve().runtime_version, "16.20.2")

    def test_nvmrc_overrides_engines(self):
        self.write("package.json", {"engines": {"node": "^16"}})
        self.write(".nvmrc", "v18\n")
        self.assertEqual(self.resolve().runtime_version, "18.20.4")

    def test_nvmrc_lts_codename(self):
        self.write("package.json", {})
        self.write(".nvmrc", "lts/hydrogen\n")
        self.assertEqual(self.resolve().runtime_version, "18.20.4")
        self.write(".nvmrc", "lts/*\n")
        self.assertEqual(self.resolve().runtime_version, "20.17.0")

    def test_configured_version_wins(self):
        self.write("package.json", {"engines": {"node": "^16"}})
        self.write(".nvmrc", "18")
        self.assertEqual(self.resolve(platform_name="nodejs", platform_version="22").runtime_version, "22.9.0")

    def test_unsupported_version(self):
        self.write("package.json", {"engines": {"node": "12.x"}})
        with self.assertRaises(UnsupportedVersionError) as cm:
            self.resolve()
        self.assertEqual(cm.exception.requested, "12.x")

    def test_unknown_lts_name(self):
        self.write(".nvmrc", "lts/unobtainium")
        self.write("package.json", {})
        with self.assertRaises(UnsupportedVersionError):
            self.resolve()


class TestNodeBuildScript(NodePlatformTestCase):

    def test_install_only_when_no_build_script(self):
        self.write("package.json", {"name": "app", "dependencies": {"express": "^4"}})
        self.write("package-lock.json", "{}")
        snippet = self.platform.generate_build_script(self.context())
        self.assertFalse(snippet.is_full_script)
        self.assertEqual([s.phase for s in snippet.steps], [sb.RESTORE])
        self.assertIn("npm install", self.lines(snippet))
        self.assertNotIn("npm run build", self.lines(snippet))
        self.assertEqual(snippet.build_properties, {
            manifest.NODE_VERSION: "20.17.0",
            manifest.STARTUP_FILE_NAME: "",
        })

    def test_build_script_and_output_dir(self):
        self.write("package.json", {"scripts": {"build": "react-scripts build"}})
        snippet = self.platform.generate_build_script(self.context())
        build_steps = [s for s in snippet.steps if s.phase == sb.BUILD]
        self.assertEqual(len(build_steps), 1)
        self.assertIn("npm run build", build_steps[0].lines)
        self.assertEqual(snippet.build_properties[manifest.NODE_OUTPUT_DIR_PATH], "build")

    def test_output_dir_conventions(self):
        cases = {
            "ng build --prod": "dist",
            "gatsby build": "public",
            "next build && next export": ".next",
            "nuxt build": ".nuxt",
            "vue-cli-service build": "dist",
            "hexo generate": "public",
            "tsc": None,
        }
        for command, expected in cases.items():
            self.assertEqual(get_output_dir_path(PackageJson(scripts={"build": command})), expected, command)
        self.assertIsNone(get_output_dir_path(None))

    def test_yarn(self):
        self.write("package.json", {"scripts": {"build": "tsc"}})
        self.write("yarn.lock")
        lines = self.lines(self.platform.generate_build_script(self.context()))
        self.assertIn("yarn install --prefer-offline", lines)
        self.assertIn("yarn run build", lines)
        self.assertIn('yarn config set cache-folder "$HOME/.cache/yarn"', lines)

    def test_custom_build_command(self):
        self.write("package.json", {"scripts": {"build": "tsc"}})
        lines = self.lines(self.platform.generate_build_script(self.context(custom_run_build_command="make site")))
        self.assertIn("make site", lines)
        self.assertNotIn("npm run build", lines)

    def test_require_build_without_build_command(self):
        self.write("package.json", {})
        with self.assertRaises(NoBuildStepError) as cm:
            self.platform.generate_build_script(self.context(properties={"require_build": ""}))
        self.assertTrue(any("package.json" in location for location in cm.exception.checked_locations))
        self.assertTrue(any("RUN_BUILD_COMMAND" in location for location in cm.exception.checked_locations))

    def test_azure_build_script_runs_after_build(self):
        self.write("package.json", {"scripts": {"build": "tsc", "build:azure": "node tools/azure.js"}})
        lines = self.lines(self.platform.generate_build_script(self.context()))
        self.assertLess(lines.index("npm run build"), lines.index("npm run build:azure"))

    def test_azure_build_script_satisfies_require_build(self):
        self.write("package.json", {"scripts": {"build:azure": "tsc -p ."}})
        snippet = self.platform.generate_build_script(self.context(properties={"require_build": "true"}))
        self.assertIn("npm run build:azure", self.lines(snippet))
        self.assertNotIn("npm run build", self.lines(snippet))

    def test_azure_build_script_skipped_when_packaging(self):
        self.write("package.json", {"scripts": {"build:azure": "tsc -p ."}})
        lines = self.lines(self.platform.generate_build_script(self.context(should_package=True)))
        self.assertNotIn("npm run build:azure", lines)
        self.assertIn("npm pack", lines)
        with self.assertRaises(NoBuildStepError) as cm:
            self.platform.generate_build_script(
                self.context(should_package=True, properties={"require_build": "true"})
            )
        self.assertTrue(any("build:azure" in location for location in cm.exception.checked_locations))

    def test_require_build_false(self):
        self.write("package.json", {})
        self.platform.generate_build_script(self.context(properties={"require_build": "false"}))
        with self.assertRaises(InvalidPropertyError):
            self.platform.generate_build_script(self.context(properties={"require_build": "sure"}))

    def test_registry_url(self):
        self.write("package.json", {})
        snippet = self.platform.generate_build_script(
            self.context(properties={"npm_registry_url": "https://registry.example.com/"})
        )
        self.assertIn(
            "grep -qxF registry=https://registry.example.com/ .npmrc 2>/dev/null "
            "|| echo registry=https://registry.example.com/ >> .npmrc",
            self.lines(snippet),
        )
        self.assertEqual(snippet.build_properties[manifest.NODE_NPM_REGISTRY_URL], "https://registry.example.com/")

    def test_compress_node_modules(self):
        self.write("package.json", {})
        context = self.context(destination_dir="/out", properties={"compress_node_modules": ""})
        snippet = self.platform.generate_build_script(context)
        self.assertEqual(snippet.build_properties[manifest.NODE_MODULES_FILE], "node_modules.tar.gz")
        compress = [s for s in snippet.steps if s.phase == sb.COMPRESS][0]
        self.assertIn("tar -zcf /out/node_modules.tar.gz node_modules", compress.lines)
        self.assertEqual(self.platform.get_directories_to_exclude_from_copy_to_build_output_dir(context),
                         ["/node_modules"])

    def test_compress_node_modules_zip(self):
        self.write("package.json", {})
        context = self.context(properties={"compress_node_modules": "zip"})
        snippet = self.platform.generate_build_script(context)
        self.assertEqual(snippet.build_properties[manifest.NODE_MODULES_FILE], "node_modules.zip")
        compress = [s for s in snippet.steps if s.phase == sb.COMPRESS][0]
        self.assertIn(f"zip -y -q -r {self.source_dir}/node_modules.zip node_modules", compress.lines)

    def test_no_compression_excludes_stale_archives(self):
        context = self.context()
        self.assertEqual(self.platform.get_directories_to_exclude_from_copy_to_build_output_dir(context),
                         ["node_modules.zip", "node_modules.tar.gz"])
        self.assertIn("/node_modules",
                      self.platform.get_directories_to_exclude_from_copy_to_intermediate_dir(context))

    def test_prune_dev_dependencies_and_pack(self):
        self.write("package.json", {"scripts": {"build": "tsc"}, "devDependencies": {"typescript": "^5"}})
        snippet = self.platform.generate_build_script(
            self.context(should_package=True, properties={"prune_dev_dependencies": "true"})
        )
        build = [s for s in snippet.steps if s.phase == sb.BUILD][0].lines
        self.assertLess(build.index("npm run build"), build.index("npm pack"))
        self.assertLess(build.index("npm pack"), build.index("npm prune --production"))

    def test_installation_script(self):
        self.write("package.json", {})
        snippet = self.platform.generate_build_script(self.context(enable_dynamic_install=True))
        self.assertIn("install-tool nodejs 20.17.0", snippet.installation_script)
        snippet = self.platform.generate_build_script(self.context(enable_dynamic_install=False))
        self.assertIsNone(snippet.installation_script)

    def test_is_clean_repo(self):
        self.assertTrue(self.platform.is_clean_repo(self.repo))
        os.makedirs(os.path.join(self.source_dir, "node_modules"))
        self.assertFalse(self.platform.is_clean_repo(self.repo))

    def test_enabled_toggles(self):
        self.assertTrue(self.platform.is_enabled(self.config()))
        self.assertFalse(self.platform.is_enabled(self.config(enable_node_build=False)))
        self.assertTrue(self.platform.is_enabled_for_multi_platform_build(self.config()))


class TestStartupFile(NodePlatformTestCase):

    def test_main_field(self):
        self.assertEqual(get_startup_file_name(self.repo, PackageJson(main="lib/index.js")), "lib/index.js")

    def test_start_script(self):
        package_json = PackageJson(scripts={"start": "node dist/server.js --port 80"})
        self.assertEqual(get_startup_file_name(self.repo, package_json), "dist/server.js")

    def test_known_files(self):
        self.assertEqual(get_startup_file_name(self.repo, None), "")
        self.write("bin/www")
        self.assertEqual(get_startup_file_name(self.repo, None), "bin/www")
        self.write("app.js")
        self.assertEqual(get_startup_file_name(self.repo, PackageJson()), "app.js")

    def test_schema_is_defensive(self):
        package_json = PackageJson.from_dict({"main": 3, "scripts": ["build"], "engines": {"node": 18}})
        self.assertIsNone(package_json.main)
        self.assertEqual(package_json.scripts, {})
        self.assertEqual(package_json.engines, {})


if __name__ == '__main__':
    unittest.main()
